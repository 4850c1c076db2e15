"""
Upload Routes
Image uploads to Cloudinary for avatars, products and banners
"""

from __future__ import annotations
from datetime import datetime, timezone
import logging

from flask import Blueprint, jsonify, request

from db import get_collection, parse_object_id
from routes.auth import require_auth
from utils import cloudinary_helper
from utils.cloudinary_helper import ALLOWED_EXTENSIONS, MAX_FILE_SIZE, MAX_FILES, allowed_file

logger = logging.getLogger(__name__)

uploads_bp = Blueprint('uploads', __name__, url_prefix='/api/upload')

UPLOAD_TYPES = ('avatar', 'product', 'banner', 'general')


def _file_size(file) -> int:
    stream = file.stream
    stream.seek(0, 2)
    size = stream.tell()
    stream.seek(0)
    return size


def _check_file(file) -> str | None:
    if file is None or not file.filename:
        return 'Không có file nào được tải lên'
    if not allowed_file(file.filename):
        return f"Chỉ chấp nhận file ảnh ({', '.join(sorted(ALLOWED_EXTENSIONS))})"
    if _file_size(file) > MAX_FILE_SIZE:
        return f'Kích thước file tối đa {MAX_FILE_SIZE // (1024 * 1024)}MB'
    return None


@uploads_bp.route('/', methods=['POST'])
def upload_single():
    """Form field `image`, optional `type` selecting folder and transformation"""
    try:
        file = request.files.get('image')
        error = _check_file(file)
        if error:
            return jsonify({'success': False, 'message': error}), 400

        upload_type = request.form.get('type', 'general')
        if upload_type not in UPLOAD_TYPES:
            upload_type = 'general'

        success, result, _ = cloudinary_helper.upload_image(file, upload_type)
        if not success:
            return jsonify({'success': False, 'message': result}), 500

        return jsonify({'success': True, 'message': 'Tải ảnh lên thành công', 'data': result})

    except Exception as e:
        logger.exception("Upload failed: %s", e)
        return jsonify({'success': False, 'message': str(e)}), 500


@uploads_bp.route('/avatar', methods=['POST'])
@require_auth
def upload_avatar():
    """Replace the caller's avatar and delete the previous image"""
    try:
        file = request.files.get('image') or request.files.get('avatar')
        error = _check_file(file)
        if error:
            return jsonify({'success': False, 'message': error}), 400

        user_id = request.user_info['userId']
        users = get_collection('users')
        user = users.find_one({'_id': parse_object_id(user_id)})
        if not user:
            return jsonify({'success': False, 'message': 'Không tìm thấy người dùng'}), 404

        success, result, public_id = cloudinary_helper.upload_image(file, 'avatar', user_id)
        if not success:
            return jsonify({'success': False, 'message': result}), 500

        old_public_id = user.get('avatar_public_id')
        if old_public_id and old_public_id != public_id:
            deleted, message = cloudinary_helper.delete_image(old_public_id)
            if not deleted:
                logger.warning("Could not delete old avatar %s: %s", old_public_id, message)

        users.update_one({'_id': user['_id']}, {'$set': {
            'avatar': result['url'],
            'avatar_public_id': public_id,
            'updated_at': datetime.now(timezone.utc),
        }})
        return jsonify({'success': True, 'message': 'Cập nhật ảnh đại diện thành công', 'data': result})

    except Exception as e:
        logger.exception("Avatar upload failed: %s", e)
        return jsonify({'success': False, 'message': str(e)}), 500


@uploads_bp.route('/multiple', methods=['POST'])
def upload_multiple():
    try:
        files = request.files.getlist('images')
        if not files:
            return jsonify({'success': False, 'message': 'Không có file nào được tải lên'}), 400
        if len(files) > MAX_FILES:
            return jsonify({'success': False, 'message': f'Tối đa {MAX_FILES} ảnh mỗi lần'}), 400
        for file in files:
            error = _check_file(file)
            if error:
                return jsonify({'success': False, 'message': f'{file.filename}: {error}'}), 400

        upload_type = request.form.get('type', 'product')
        if upload_type not in UPLOAD_TYPES:
            upload_type = 'general'

        results = cloudinary_helper.upload_multiple_images(files, upload_type)
        uploaded = [r for r in results if r['success']]
        failed = [r for r in results if not r['success']]
        return jsonify({
            'success': bool(uploaded),
            'message': f'Đã tải lên {len(uploaded)}/{len(files)} ảnh',
            'data': uploaded,
            'errors': failed,
        }), 200 if uploaded else 500

    except Exception as e:
        logger.exception("Multiple upload failed: %s", e)
        return jsonify({'success': False, 'message': str(e)}), 500


@uploads_bp.route('/', methods=['DELETE'])
@require_auth
def delete_upload():
    try:
        data = request.get_json(silent=True) or {}
        public_id = (data.get('publicId') or request.args.get('publicId') or '').strip()
        if not public_id:
            return jsonify({'success': False, 'message': 'publicId là bắt buộc'}), 400

        success, message = cloudinary_helper.delete_image(public_id)
        return jsonify({'success': success, 'message': message}), 200 if success else 400

    except Exception as e:
        logger.exception("Delete upload failed: %s", e)
        return jsonify({'success': False, 'message': str(e)}), 500


@uploads_bp.route('/optimize', methods=['GET'])
def optimize_url():
    try:
        public_id = (request.args.get('publicId') or '').strip()
        if not public_id:
            return jsonify({'success': False, 'message': 'publicId là bắt buộc'}), 400

        width = request.args.get('width', type=int)
        height = request.args.get('height', type=int)
        quality = request.args.get('quality', 'auto')
        url = cloudinary_helper.get_optimized_url(public_id, width, height, quality)
        if not url:
            return jsonify({'success': False, 'message': 'Cloudinary chưa được cấu hình'}), 503

        return jsonify({'success': True, 'message': 'OK', 'url': url})

    except Exception as e:
        logger.exception("Optimize url failed: %s", e)
        return jsonify({'success': False, 'message': str(e)}), 500
