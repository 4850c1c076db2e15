"""
Cloudinary Helper
Handles image upload, deletion, and URL management for products, avatars and banners
"""

import logging
from typing import Tuple, Optional, List, Any

import cloudinary
import cloudinary.uploader
import cloudinary.utils
from flask import current_app, has_app_context

from config import get_settings

logger = logging.getLogger(__name__)

ALLOWED_EXTENSIONS = {'png', 'jpg', 'jpeg', 'gif', 'webp'}
MAX_FILE_SIZE = 5 * 1024 * 1024
MAX_FILES = 5


def get_upload_config(upload_type: str, user_id: Optional[str] = None) -> dict:
    """Folder and transformation for each kind of upload"""
    if upload_type == 'avatar':
        config = {
            'folder': 'user-avatars',
            'transformation': [
                {'width': 300, 'height': 300, 'crop': 'fill', 'quality': 'auto', 'fetch_format': 'auto'},
                {'radius': 'max'},
            ],
            'overwrite': True,
        }
        if user_id:
            config['public_id'] = f"user-{user_id}"
        return config
    if upload_type == 'product':
        return {
            'folder': 'products',
            'transformation': [
                {'width': 800, 'height': 600, 'crop': 'limit', 'quality': 'auto', 'fetch_format': 'auto'},
            ],
        }
    if upload_type == 'banner':
        return {
            'folder': 'banners',
            'transformation': [
                {'width': 1200, 'height': 400, 'crop': 'fill', 'quality': 'auto', 'fetch_format': 'auto'},
            ],
        }
    return {
        'folder': 'general',
        'transformation': [{'quality': 'auto', 'fetch_format': 'auto'}],
    }


def allowed_file(filename: str) -> bool:
    return '.' in (filename or '') and filename.rsplit('.', 1)[1].lower() in ALLOWED_EXTENSIONS


def _configure_cloudinary() -> bool:
    """Configure the SDK from the active settings (called at runtime, not import time)"""
    settings = current_app.config['settings'] if has_app_context() else get_settings()
    if not all([settings.cloudinary_cloud_name, settings.cloudinary_api_key, settings.cloudinary_api_secret]):
        logger.warning(
            "Cloudinary missing configuration: CLOUDINARY_CLOUD_NAME=%s CLOUDINARY_API_KEY=%s CLOUDINARY_API_SECRET=%s",
            'SET' if settings.cloudinary_cloud_name else 'MISSING',
            'SET' if settings.cloudinary_api_key else 'MISSING',
            'SET' if settings.cloudinary_api_secret else 'MISSING',
        )
        return False

    cloudinary.config(
        cloud_name=settings.cloudinary_cloud_name,
        api_key=settings.cloudinary_api_key,
        api_secret=settings.cloudinary_api_secret,
        secure=True,
    )
    return True


def upload_image(file: Any, upload_type: str = "general", user_id: Optional[str] = None) -> Tuple[bool, Any, str]:
    """
    Upload image to Cloudinary

    Args:
        file: uploaded file storage, data URL or remote URL
        upload_type: avatar | product | banner | general
        user_id: used to name avatars so a new upload replaces the old one

    Returns:
        (success, result_or_error, public_id)
    """
    if not _configure_cloudinary():
        return False, "Cloudinary chưa được cấu hình", ""

    try:
        options = dict(get_upload_config(upload_type, user_id))
        options['resource_type'] = 'image'
        upload_data = file if isinstance(file, str) else getattr(file, 'stream', file)

        result = cloudinary.uploader.upload(upload_data, **options)

        logger.info("Cloudinary upload successful: %s", result.get('public_id'))
        return True, {
            'url': result['secure_url'],
            'publicId': result['public_id'],
            'width': result.get('width'),
            'height': result.get('height'),
            'format': result.get('format'),
            'bytes': result.get('bytes'),
        }, result['public_id']

    except Exception as e:  # pylint: disable=broad-except
        logger.error("Cloudinary upload failed: %s", e)
        return False, f"Upload thất bại: {e}", ""


def upload_multiple_images(files: List[Any], upload_type: str = "general") -> List[dict]:
    """
    Upload several images; each entry reports its own success or error
    """
    results = []

    for i, file in enumerate(files):
        success, result, public_id = upload_image(file, upload_type)
        entry = {
            'index': i,
            'success': success,
            'originalName': getattr(file, 'filename', None),
        }
        if success:
            entry.update(result)
        else:
            entry['error'] = result
        results.append(entry)

    return results


def delete_image(public_id: str) -> Tuple[bool, str]:
    """
    Delete image from Cloudinary

    Returns:
        (success, message)
    """
    if not _configure_cloudinary():
        return False, "Cloudinary chưa được cấu hình"

    try:
        result = cloudinary.uploader.destroy(public_id)

        if result.get('result') == 'ok':
            return True, "Đã xóa ảnh"
        return False, f"Xóa ảnh thất bại: {result.get('result', 'Unknown error')}"

    except Exception as e:  # pylint: disable=broad-except
        logger.error("Cloudinary delete failed for %s: %s", public_id, e)
        return False, f"Xóa ảnh thất bại: {e}"


def get_image_url(public_id: str, transformation: Optional[dict] = None) -> str:
    """
    Generate Cloudinary delivery URL for an image with optional transformations
    """
    if not _configure_cloudinary():
        return ""

    options = {'secure': True}
    if transformation:
        options['transformation'] = transformation

    url, _ = cloudinary.utils.cloudinary_url(public_id, **options)
    return url


def get_optimized_url(public_id: str, width: Optional[int] = None, height: Optional[int] = None,
                      quality: str = 'auto') -> str:
    transformation = {'quality': quality, 'fetch_format': 'auto'}
    if width:
        transformation['width'] = width
    if height:
        transformation['height'] = height
    if width or height:
        transformation['crop'] = 'limit'
    return get_image_url(public_id, transformation)


def is_cloudinary_configured() -> bool:
    """Check if Cloudinary is properly configured"""
    return _configure_cloudinary()
