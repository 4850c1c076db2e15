"""
Rating Routes
Customers rate products they received; sellers moderate
"""

from __future__ import annotations
from datetime import datetime, timezone
import logging
import re

from flask import Blueprint, jsonify, request

from db import get_collection, parse_object_id
from models.order import OrderStatus
from models.rating import Rating, RATING_STATUSES
from models.user import UserRole
from routes.auth import require_auth, require_seller
from utils.notification_service import notify_new_rating
from utils.pagination import get_page_params, pagination_dict
from utils.validators import validate_rating

logger = logging.getLogger(__name__)

ratings_bp = Blueprint('ratings', __name__, url_prefix='/api/ratings')


def _get_ratings_collection():
    """Get MongoDB ratings collection"""
    return get_collection('ratings')


def _user_has_received(user_id: str, product_id: str) -> bool:
    return get_collection('orders').find_one({
        'user_id': user_id,
        'status': OrderStatus.DELIVERED.value,
        'items.product_id': product_id,
    }) is not None


def _users_by_id(user_ids) -> dict:
    oids = [oid for oid in (parse_object_id(uid) for uid in set(user_ids)) if oid]
    return {str(u['_id']): u for u in get_collection('users').find({'_id': {'$in': oids}})}


def _products_by_id(product_ids) -> dict:
    oids = [oid for oid in (parse_object_id(pid) for pid in set(product_ids)) if oid]
    return {str(p['_id']): p for p in get_collection('products').find({'_id': {'$in': oids}})}


def _visible_ratings(product_id: str) -> list:
    """Visible ratings whose authors are still active, newest first"""
    docs = list(_get_ratings_collection().find({'product_id': product_id, 'status': 'visible'})
                .sort('created_at', -1))
    users = _users_by_id(doc['user_id'] for doc in docs)
    return [(doc, users[doc['user_id']]) for doc in docs
            if doc['user_id'] in users and users[doc['user_id']].get('active', False)]


@ratings_bp.route('/', methods=['POST'])
@require_auth
def create_rating():
    """Only buyers with a delivered order for the product may rate it, once"""
    try:
        data = request.get_json(silent=True) or {}
        user_id = request.user_info['userId']
        product_id = str(data.get('product_id') or data.get('productId') or '')

        is_valid, error = validate_rating(data.get('rating'))
        if not is_valid:
            return jsonify({'success': False, 'message': error}), 400

        user = get_collection('users').find_one({'_id': parse_object_id(user_id)})
        if not user or not user.get('active', False):
            return jsonify({'success': False, 'message': 'Tài khoản chưa được kích hoạt hoặc đã bị khóa'}), 403

        oid = parse_object_id(product_id)
        product = get_collection('products').find_one({'_id': oid}) if oid else None
        if not product:
            return jsonify({'success': False, 'message': 'Không tìm thấy sản phẩm'}), 404

        if not _user_has_received(user_id, product_id):
            return jsonify({'success': False,
                            'message': 'Bạn chỉ có thể đánh giá sản phẩm đã mua và nhận hàng thành công'}), 403

        ratings = _get_ratings_collection()
        if ratings.find_one({'user_id': user_id, 'product_id': product_id}):
            return jsonify({'success': False, 'message': 'Bạn đã đánh giá sản phẩm này rồi'}), 400

        rating = Rating(
            product_id=product_id,
            user_id=user_id,
            rating=int(data['rating']),
            content=(data.get('content') or '').strip(),
        )
        result = ratings.insert_one(rating.to_dict())
        rating._id = str(result.inserted_id)

        notify_new_rating(rating.to_dict())
        return jsonify({'success': True, 'message': 'Đánh giá thành công',
                        'data': rating.to_public_dict(user, product)}), 201

    except Exception as e:
        logger.exception("Create rating failed: %s", e)
        return jsonify({'success': False, 'message': str(e)}), 500


@ratings_bp.route('/<product_id>', methods=['GET'])
def get_product_ratings(product_id: str):
    try:
        page, limit, skip = get_page_params(request.args, default_limit=10)
        rows = _visible_ratings(product_id)
        total = len(rows)
        average = round(sum(doc['rating'] for doc, _ in rows) / total, 1) if total else 0

        return jsonify({
            'success': True,
            'message': 'OK',
            'data': [Rating.from_dict(doc).to_public_dict(user) for doc, user in rows[skip:skip + limit]],
            'averageRating': average,
            'totalRatings': total,
            'pagination': pagination_dict(page, limit, total),
        })

    except Exception as e:
        logger.exception("Get product ratings failed: %s", e)
        return jsonify({'success': False, 'message': str(e)}), 500


@ratings_bp.route('/average/<product_id>', methods=['GET'])
def get_average_rating(product_id: str):
    """Average, count and 1-5 star distribution"""
    try:
        rows = _visible_ratings(product_id)
        distribution = {str(star): 0 for star in range(1, 6)}
        for doc, _ in rows:
            key = str(doc['rating'])
            if key in distribution:
                distribution[key] += 1
        total = len(rows)

        return jsonify({
            'success': True,
            'message': 'OK',
            'data': {
                'averageRating': round(sum(doc['rating'] for doc, _ in rows) / total, 1) if total else 0,
                'totalRatings': total,
                'distribution': distribution,
            }
        })

    except Exception as e:
        logger.exception("Get average rating failed: %s", e)
        return jsonify({'success': False, 'message': str(e)}), 500


@ratings_bp.route('/<rating_id>', methods=['PUT'])
@require_auth
def update_rating(rating_id: str):
    """Owner edits content and stars; seller toggles visibility"""
    try:
        oid = parse_object_id(rating_id)
        if oid is None:
            return jsonify({'success': False, 'message': 'ID đánh giá không hợp lệ'}), 400

        ratings = _get_ratings_collection()
        doc = ratings.find_one({'_id': oid})
        if not doc:
            return jsonify({'success': False, 'message': 'Không tìm thấy đánh giá'}), 404

        data = request.get_json(silent=True) or {}
        is_owner = doc['user_id'] == request.user_info['userId']
        is_seller = request.user_info.get('role') == UserRole.SELLER.value
        if not is_owner and not is_seller:
            return jsonify({'success': False, 'message': 'Bạn không có quyền sửa đánh giá này'}), 403

        update = {'updated_at': datetime.now(timezone.utc)}
        if is_owner:
            if 'rating' in data:
                is_valid, error = validate_rating(data['rating'])
                if not is_valid:
                    return jsonify({'success': False, 'message': error}), 400
                update['rating'] = int(data['rating'])
            if 'content' in data:
                update['content'] = (data.get('content') or '').strip()
        if 'status' in data:
            if not is_seller:
                return jsonify({'success': False, 'message': 'Chỉ người bán mới có thể ẩn/hiện đánh giá'}), 403
            if data['status'] not in RATING_STATUSES:
                return jsonify({'success': False, 'message': 'Trạng thái đánh giá không hợp lệ'}), 400
            update['status'] = data['status']

        ratings.update_one({'_id': oid}, {'$set': update})
        return jsonify({'success': True, 'message': 'Cập nhật đánh giá thành công',
                        'data': Rating.from_dict(ratings.find_one({'_id': oid})).to_public_dict()})

    except Exception as e:
        logger.exception("Update rating failed: %s", e)
        return jsonify({'success': False, 'message': str(e)}), 500


@ratings_bp.route('/<rating_id>', methods=['DELETE'])
@require_auth
def delete_rating(rating_id: str):
    try:
        oid = parse_object_id(rating_id)
        if oid is None:
            return jsonify({'success': False, 'message': 'ID đánh giá không hợp lệ'}), 400

        ratings = _get_ratings_collection()
        doc = ratings.find_one({'_id': oid})
        if not doc:
            return jsonify({'success': False, 'message': 'Không tìm thấy đánh giá'}), 404
        if doc['user_id'] != request.user_info['userId'] and request.user_info.get('role') != UserRole.SELLER.value:
            return jsonify({'success': False, 'message': 'Bạn không có quyền xóa đánh giá này'}), 403

        ratings.delete_one({'_id': oid})
        return jsonify({'success': True, 'message': 'Xóa đánh giá thành công'})

    except Exception as e:
        logger.exception("Delete rating failed: %s", e)
        return jsonify({'success': False, 'message': str(e)}), 500


@ratings_bp.route('/', methods=['GET'])
@require_seller
def list_all_ratings():
    """Filters: status, searchUser (name/email), searchProduct (name)"""
    try:
        page, limit, skip = get_page_params(request.args)
        query = {}
        status = request.args.get('status')
        if status in RATING_STATUSES:
            query['status'] = status

        search_user = (request.args.get('searchUser') or '').strip()
        if search_user:
            pattern = {'$regex': re.escape(search_user), '$options': 'i'}
            users = get_collection('users').find({'$or': [{'name': pattern}, {'email': pattern}]}, {'_id': 1})
            query['user_id'] = {'$in': [str(u['_id']) for u in users]}

        search_product = (request.args.get('searchProduct') or '').strip()
        if search_product:
            pattern = {'$regex': re.escape(search_product), '$options': 'i'}
            products = get_collection('products').find({'name': pattern}, {'_id': 1})
            query['product_id'] = {'$in': [str(p['_id']) for p in products]}

        ratings = _get_ratings_collection()
        total = ratings.count_documents(query)
        docs = list(ratings.find(query).sort('created_at', -1).skip(skip).limit(limit))
        users = _users_by_id(doc['user_id'] for doc in docs)
        products = _products_by_id(doc['product_id'] for doc in docs)

        return jsonify({
            'success': True,
            'message': 'OK',
            'data': [Rating.from_dict(doc).to_public_dict(users.get(doc['user_id']), products.get(doc['product_id']))
                     for doc in docs],
            'pagination': pagination_dict(page, limit, total),
        })

    except Exception as e:
        logger.exception("List ratings failed: %s", e)
        return jsonify({'success': False, 'message': str(e)}), 500
