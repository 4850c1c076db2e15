"""
Category Routes
"""

from __future__ import annotations
from datetime import datetime, timezone
import logging

from flask import Blueprint, jsonify, request

from db import get_collection, parse_object_id
from models.category import Category
from routes.auth import require_seller
from utils.text import slugify, unique_slug

logger = logging.getLogger(__name__)

categories_bp = Blueprint('categories', __name__, url_prefix='/api/categories')


def _slug_for(name: str, exclude_id=None) -> str:
    categories = get_collection('categories')

    def exists(slug):
        query = {'slug': slug}
        if exclude_id is not None:
            query['_id'] = {'$ne': exclude_id}
        return categories.find_one(query) is not None

    return unique_slug(slugify(name, 'danh-muc'), exists)


@categories_bp.route('/', methods=['GET'])
def list_categories():
    """All categories, newest first, with product counts"""
    try:
        categories = get_collection('categories')
        if categories is None:
            return jsonify({'success': False, 'message': 'Database not available'}), 503

        products = get_collection('products')
        items = []
        for doc in categories.find().sort('created_at', -1):
            data = Category.from_dict(doc).to_public_dict()
            data['product_count'] = products.count_documents({'category_id': data['_id'], 'status': 'active'})
            items.append(data)

        return jsonify({'success': True, 'message': 'OK', 'data': items})

    except Exception as e:
        logger.exception("List categories failed: %s", e)
        return jsonify({'success': False, 'message': str(e)}), 500


@categories_bp.route('/<category_id>', methods=['GET'])
def get_category(category_id: str):
    try:
        oid = parse_object_id(category_id)
        if oid is None:
            return jsonify({'success': False, 'message': 'ID danh mục không hợp lệ'}), 400

        doc = get_collection('categories').find_one({'_id': oid})
        if not doc:
            return jsonify({'success': False, 'message': 'Không tìm thấy danh mục'}), 404

        return jsonify({'success': True, 'message': 'OK', 'data': Category.from_dict(doc).to_public_dict()})

    except Exception as e:
        logger.exception("Get category failed: %s", e)
        return jsonify({'success': False, 'message': str(e)}), 500


@categories_bp.route('/', methods=['POST'])
@require_seller
def create_category():
    try:
        data = request.get_json(silent=True) or {}
        name = (data.get('name') or '').strip()
        if not name:
            return jsonify({'success': False, 'message': 'Tên danh mục là bắt buộc'}), 400

        categories = get_collection('categories')
        if categories.find_one({'name': name}):
            return jsonify({'success': False, 'message': 'Danh mục đã tồn tại'}), 400

        category = Category(
            name=name,
            slug=_slug_for(name),
            description=(data.get('description') or '').strip(),
            image=data.get('image'),
        )
        result = categories.insert_one(category.to_dict())
        category._id = str(result.inserted_id)

        return jsonify({'success': True, 'message': 'Tạo danh mục thành công',
                        'data': category.to_public_dict()}), 201

    except Exception as e:
        logger.exception("Create category failed: %s", e)
        return jsonify({'success': False, 'message': str(e)}), 500


@categories_bp.route('/<category_id>', methods=['PUT'])
@require_seller
def update_category(category_id: str):
    try:
        oid = parse_object_id(category_id)
        if oid is None:
            return jsonify({'success': False, 'message': 'ID danh mục không hợp lệ'}), 400

        data = request.get_json(silent=True) or {}
        categories = get_collection('categories')
        doc = categories.find_one({'_id': oid})
        if not doc:
            return jsonify({'success': False, 'message': 'Không tìm thấy danh mục'}), 404

        update = {'updated_at': datetime.now(timezone.utc)}
        if 'name' in data:
            name = (data.get('name') or '').strip()
            if not name:
                return jsonify({'success': False, 'message': 'Tên danh mục là bắt buộc'}), 400
            if categories.find_one({'name': name, '_id': {'$ne': oid}}):
                return jsonify({'success': False, 'message': 'Danh mục đã tồn tại'}), 400
            update['name'] = name
            if name != doc.get('name'):
                update['slug'] = _slug_for(name, exclude_id=oid)
        if 'description' in data:
            update['description'] = (data.get('description') or '').strip()
        if 'image' in data:
            update['image'] = data.get('image')

        categories.update_one({'_id': oid}, {'$set': update})
        doc = categories.find_one({'_id': oid})
        return jsonify({'success': True, 'message': 'Cập nhật danh mục thành công',
                        'data': Category.from_dict(doc).to_public_dict()})

    except Exception as e:
        logger.exception("Update category failed: %s", e)
        return jsonify({'success': False, 'message': str(e)}), 500


@categories_bp.route('/<category_id>', methods=['DELETE'])
@require_seller
def delete_category(category_id: str):
    """Refused while any product still references the category"""
    try:
        oid = parse_object_id(category_id)
        if oid is None:
            return jsonify({'success': False, 'message': 'ID danh mục không hợp lệ'}), 400

        in_use = get_collection('products').count_documents({'category_id': category_id})
        if in_use:
            return jsonify({'success': False,
                            'message': f'Không thể xóa danh mục đang có {in_use} sản phẩm'}), 400

        result = get_collection('categories').delete_one({'_id': oid})
        if result.deleted_count == 0:
            return jsonify({'success': False, 'message': 'Không tìm thấy danh mục'}), 404

        return jsonify({'success': True, 'message': 'Xóa danh mục thành công'})

    except Exception as e:
        logger.exception("Delete category failed: %s", e)
        return jsonify({'success': False, 'message': str(e)}), 500
