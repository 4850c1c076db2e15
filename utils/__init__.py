# Utils package initialization
# Contains utility functions and helpers

from .validators import validate_email, validate_password, validate_phone, validate_required_fields
from .text import remove_accents, slugify, unique_slug
from .pagination import get_page_params, pagination_dict
from .cloudinary_helper import upload_image, delete_image, get_image_url

__all__ = [
    'validate_email', 'validate_password', 'validate_phone', 'validate_required_fields',
    'remove_accents', 'slugify', 'unique_slug',
    'get_page_params', 'pagination_dict',
    'upload_image', 'delete_image', 'get_image_url',
]
