"""
Hometown Post Routes
Articles about the region's culture, food and places
"""

from __future__ import annotations
from datetime import datetime, timezone
import logging
import re

from flask import Blueprint, jsonify, request

from db import get_collection, parse_object_id
from models.hometown_post import HometownPost, POST_CATEGORIES, POST_STATUSES, make_excerpt
from models.user import UserRole
from routes.auth import optional_auth, require_seller
from utils.pagination import get_page_params, pagination_dict
from utils.text import rank_by_relevance, slugify, unique_slug

logger = logging.getLogger(__name__)

hometown_posts_bp = Blueprint('hometown_posts', __name__, url_prefix='/api/hometown-posts')

RELATED_LIMIT = 3


def _get_posts_collection():
    """Get MongoDB hometown posts collection"""
    return get_collection('hometown_posts')


def _viewer_is_seller() -> bool:
    return bool(request.user_info) and request.user_info.get('role') == UserRole.SELLER.value


def _slug_for(title: str, exclude_id=None) -> str:
    posts = _get_posts_collection()

    def exists(slug):
        query = {'slug': slug}
        if exclude_id is not None:
            query['_id'] = {'$ne': exclude_id}
        return posts.find_one(query) is not None

    return unique_slug(slugify(title, 'bai-viet'), exists)


def _with_authors(docs) -> list:
    docs = list(docs)
    oids = [oid for oid in (parse_object_id(d.get('author_id')) for d in docs) if oid]
    authors = {str(u['_id']): u for u in get_collection('users').find({'_id': {'$in': oids}})}
    return [HometownPost.from_dict(d).to_public_dict(authors.get(d.get('author_id'))) for d in docs]


def _list_response(query: dict, sort=('created_at', -1)):
    page, limit, skip = get_page_params(request.args, default_limit=10)
    posts = _get_posts_collection()
    total = posts.count_documents(query)
    docs = posts.find(query).sort(*sort).skip(skip).limit(limit)
    return jsonify({
        'success': True,
        'message': 'OK',
        'data': _with_authors(docs),
        'pagination': pagination_dict(page, limit, total),
    })


def _parse_post_fields(data: dict, partial: bool = False) -> tuple[dict | None, str | None]:
    fields = {}
    if not partial:
        for name in ('title', 'content', 'category'):
            if not str(data.get(name) or '').strip():
                return None, f'Thiếu trường bắt buộc: {name}'
    for name in ('title', 'content'):
        if name in data:
            value = str(data.get(name) or '').strip()
            if not value:
                return None, f'{name} không được để trống'
            fields[name] = value
    if 'category' in data:
        if data['category'] not in POST_CATEGORIES:
            return None, f"Danh mục phải là một trong: {', '.join(POST_CATEGORIES)}"
        fields['category'] = data['category']
    if 'status' in data:
        if data['status'] not in POST_STATUSES:
            return None, 'Trạng thái phải là draft hoặc published'
        fields['status'] = data['status']
    if 'excerpt' in data:
        fields['excerpt'] = str(data.get('excerpt') or '').strip()
    if 'featured_image' in data:
        fields['featured_image'] = data.get('featured_image') or None
    if 'location' in data:
        location = data.get('location') or {}
        if not isinstance(location, dict):
            return None, 'location không hợp lệ'
        fields['location'] = {
            'district': str(location.get('district') or '').strip(),
            'specific_place': str(location.get('specific_place') or '').strip(),
        }
    return fields, None


# Public routes

@hometown_posts_bp.route('/', methods=['GET'])
@optional_auth
def list_posts():
    """Published posts (sellers see drafts too); filters category, district, status"""
    try:
        query = {}
        if _viewer_is_seller():
            status = request.args.get('status')
            if status in POST_STATUSES:
                query['status'] = status
        else:
            query['status'] = 'published'
        category = request.args.get('category')
        if category:
            query['category'] = category
        district = request.args.get('district')
        if district:
            query['location.district'] = district
        return _list_response(query)

    except Exception as e:
        logger.exception("List hometown posts failed: %s", e)
        return jsonify({'success': False, 'message': str(e)}), 500


@hometown_posts_bp.route('/featured', methods=['GET'])
def featured_posts():
    """Most viewed published posts"""
    try:
        try:
            limit = min(max(int(request.args.get('limit', 5)), 1), 20)
        except ValueError:
            limit = 5
        docs = _get_posts_collection().find({'status': 'published'}).sort('views', -1).limit(limit)
        return jsonify({'success': True, 'message': 'OK', 'data': _with_authors(docs)})

    except Exception as e:
        logger.exception("Featured hometown posts failed: %s", e)
        return jsonify({'success': False, 'message': str(e)}), 500


@hometown_posts_bp.route('/category/<category>', methods=['GET'])
def posts_by_category(category: str):
    try:
        if category not in POST_CATEGORIES:
            return jsonify({'success': False, 'message': 'Danh mục không hợp lệ'}), 400
        return _list_response({'status': 'published', 'category': category})

    except Exception as e:
        logger.exception("Hometown posts by category failed: %s", e)
        return jsonify({'success': False, 'message': str(e)}), 500


@hometown_posts_bp.route('/location/<district>', methods=['GET'])
def posts_by_location(district: str):
    try:
        return _list_response({'status': 'published', 'location.district': district})

    except Exception as e:
        logger.exception("Hometown posts by location failed: %s", e)
        return jsonify({'success': False, 'message': str(e)}), 500


@hometown_posts_bp.route('/search', methods=['GET'])
def search_posts():
    """Accent-insensitive search over title, excerpt, content and place"""
    try:
        q = (request.args.get('q') or '').strip()
        if not q:
            return jsonify({'success': False, 'message': 'Vui lòng nhập từ khóa tìm kiếm'}), 400

        page, limit, skip = get_page_params(request.args, default_limit=10)
        docs = list(_get_posts_collection().find({'status': 'published'}))
        for doc in docs:
            doc['_place'] = (doc.get('location') or {}).get('specific_place', '')
        ranked = rank_by_relevance(docs, q, ['title', 'excerpt', 'content', '_place'])
        if not ranked:
            pattern = re.compile(re.escape(q), re.IGNORECASE)
            ranked = [d for d in docs if pattern.search(d.get('title', '')) or pattern.search(d.get('content', ''))]

        return jsonify({
            'success': True,
            'message': 'OK',
            'data': _with_authors(ranked[skip:skip + limit]),
            'pagination': pagination_dict(page, limit, len(ranked)),
        })

    except Exception as e:
        logger.exception("Search hometown posts failed: %s", e)
        return jsonify({'success': False, 'message': str(e)}), 500


@hometown_posts_bp.route('/<slug_or_id>', methods=['GET'])
@optional_auth
def get_post(slug_or_id: str):
    """Single post with related posts; every read counts a view"""
    try:
        posts = _get_posts_collection()
        oid = parse_object_id(slug_or_id)
        doc = posts.find_one({'_id': oid}) if oid else None
        if not doc:
            doc = posts.find_one({'slug': slug_or_id})
        if not doc or (doc.get('status') != 'published' and not _viewer_is_seller()):
            return jsonify({'success': False, 'message': 'Không tìm thấy bài viết'}), 404

        posts.update_one({'_id': doc['_id']}, {'$inc': {'views': 1}})
        doc['views'] = doc.get('views', 0) + 1

        related = posts.find({
            'status': 'published',
            'category': doc.get('category'),
            '_id': {'$ne': doc['_id']},
        }).sort('created_at', -1).limit(RELATED_LIMIT)

        data = _with_authors([doc])[0]
        data['related'] = _with_authors(related)
        return jsonify({'success': True, 'message': 'OK', 'data': data})

    except Exception as e:
        logger.exception("Get hometown post failed: %s", e)
        return jsonify({'success': False, 'message': str(e)}), 500


# Seller routes

@hometown_posts_bp.route('/admin/all', methods=['GET'])
@require_seller
def admin_list_posts():
    try:
        query = {}
        status = request.args.get('status')
        if status in POST_STATUSES:
            query['status'] = status
        category = request.args.get('category')
        if category:
            query['category'] = category
        return _list_response(query)

    except Exception as e:
        logger.exception("Admin list hometown posts failed: %s", e)
        return jsonify({'success': False, 'message': str(e)}), 500


@hometown_posts_bp.route('/', methods=['POST'])
@require_seller
def create_post():
    try:
        fields, error = _parse_post_fields(request.get_json(silent=True) or {})
        if error:
            return jsonify({'success': False, 'message': error}), 400

        post = HometownPost(
            slug=_slug_for(fields['title']),
            author_id=request.user_info['userId'],
            **fields,
        )
        result = _get_posts_collection().insert_one(post.to_dict())
        post._id = str(result.inserted_id)

        return jsonify({'success': True, 'message': 'Tạo bài viết thành công', 'data': post.to_public_dict()}), 201

    except Exception as e:
        logger.exception("Create hometown post failed: %s", e)
        return jsonify({'success': False, 'message': str(e)}), 500


@hometown_posts_bp.route('/<post_id>', methods=['PUT'])
@require_seller
def update_post(post_id: str):
    """Slug follows the title when it changes"""
    try:
        oid = parse_object_id(post_id)
        if oid is None:
            return jsonify({'success': False, 'message': 'ID bài viết không hợp lệ'}), 400

        posts = _get_posts_collection()
        doc = posts.find_one({'_id': oid})
        if not doc:
            return jsonify({'success': False, 'message': 'Không tìm thấy bài viết'}), 404

        fields, error = _parse_post_fields(request.get_json(silent=True) or {}, partial=True)
        if error:
            return jsonify({'success': False, 'message': error}), 400

        if 'title' in fields and fields['title'] != doc.get('title'):
            fields['slug'] = _slug_for(fields['title'], exclude_id=oid)
        if 'content' in fields and 'excerpt' not in fields:
            fields['excerpt'] = make_excerpt(fields['content'])
        fields['updated_at'] = datetime.now(timezone.utc)

        posts.update_one({'_id': oid}, {'$set': fields})
        return jsonify({'success': True, 'message': 'Cập nhật bài viết thành công',
                        'data': HometownPost.from_dict(posts.find_one({'_id': oid})).to_public_dict()})

    except Exception as e:
        logger.exception("Update hometown post failed: %s", e)
        return jsonify({'success': False, 'message': str(e)}), 500


@hometown_posts_bp.route('/<post_id>', methods=['DELETE'])
@require_seller
def delete_post(post_id: str):
    try:
        oid = parse_object_id(post_id)
        if oid is None:
            return jsonify({'success': False, 'message': 'ID bài viết không hợp lệ'}), 400

        result = _get_posts_collection().delete_one({'_id': oid})
        if result.deleted_count == 0:
            return jsonify({'success': False, 'message': 'Không tìm thấy bài viết'}), 404
        return jsonify({'success': True, 'message': 'Xóa bài viết thành công'})

    except Exception as e:
        logger.exception("Delete hometown post failed: %s", e)
        return jsonify({'success': False, 'message': str(e)}), 500
