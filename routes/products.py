"""
Product Routes
Storefront catalogue, product views/favorites and seller product management
"""

from __future__ import annotations
from datetime import datetime, timezone
import logging

from flask import Blueprint, jsonify, request

from db import get_collection, parse_object_id
from models.product import Product, ProductStatus
from routes.auth import require_auth, require_seller, optional_auth
from utils import notification_service
from utils.pagination import get_page_params, pagination_dict
from utils.text import slugify, unique_slug, rank_by_relevance
from utils.validators import validate_positive_number

logger = logging.getLogger(__name__)

products_bp = Blueprint('products', __name__, url_prefix='/api/products')

SORT_OPTIONS = {
    'newest': [('created_at', -1)],
    'price_asc': [('price', 1)],
    'price_desc': [('price', -1)],
    'best_selling': [('sold_quantity', -1), ('purchase_count', -1)],
    'most_viewed': [('view_count', -1)],
}

SEARCH_KEYS = ['name', 'short_description', 'description']


def _get_products_collection():
    """Get MongoDB products collection"""
    return get_collection('products')


def _current_user_id():
    user_info = getattr(request, 'user_info', None)
    return user_info.get('userId') if user_info else None


def _category_map(docs) -> dict:
    ids = {parse_object_id(doc.get('category_id')) for doc in docs if doc.get('category_id')}
    ids.discard(None)
    if not ids:
        return {}
    return {
        str(c['_id']): {'_id': str(c['_id']), 'name': c.get('name'), 'slug': c.get('slug')}
        for c in get_collection('categories').find({'_id': {'$in': list(ids)}})
    }


def _to_public_list(docs, user_id=None) -> list:
    docs = list(docs)
    categories = _category_map(docs)
    items = []
    for doc in docs:
        data = Product.from_dict(doc).to_public_dict(user_id)
        data['category'] = categories.get(doc.get('category_id'))
        items.append(data)
    return items


def _find_product(id_or_slug: str):
    products = _get_products_collection()
    oid = parse_object_id(id_or_slug)
    if oid is not None:
        doc = products.find_one({'_id': oid})
        if doc:
            return doc
    return products.find_one({'slug': id_or_slug})


def _normalize_images(images) -> list:
    """Accept URLs or {image_url, is_primary} dicts; exactly one primary"""
    normalized = []
    for image in images or []:
        if isinstance(image, str):
            image = {'image_url': image}
        if isinstance(image, dict) and image.get('image_url'):
            normalized.append({'image_url': image['image_url'], 'is_primary': bool(image.get('is_primary'))})
    if normalized and not any(i['is_primary'] for i in normalized):
        normalized[0]['is_primary'] = True
    return normalized


def _status_for_stock(stock: int, requested: str | None) -> str:
    if requested == ProductStatus.INACTIVE.value:
        return requested
    if stock <= 0:
        return ProductStatus.OUT_OF_STOCK.value
    return ProductStatus.ACTIVE.value


def _validate_product_fields(data: dict, partial: bool = False) -> str | None:
    if not partial:
        for field in ('name', 'price', 'category_id'):
            if data.get(field) in (None, ''):
                return f'Thiếu trường bắt buộc: {field}'
    if 'name' in data and not (data.get('name') or '').strip():
        return 'Tên sản phẩm là bắt buộc'
    if 'price' in data:
        is_valid, error = validate_positive_number(data['price'], 'Giá', min_val=0)
        if not is_valid:
            return error
    if data.get('sale_price') not in (None, ''):
        is_valid, error = validate_positive_number(data['sale_price'], 'Giá khuyến mãi', min_val=0)
        if not is_valid:
            return error
    if 'stock_quantity' in data:
        is_valid, error = validate_positive_number(data['stock_quantity'], 'Số lượng tồn kho', min_val=0)
        if not is_valid:
            return error
    if 'status' in data and data['status'] not in ProductStatus._value2member_map_:
        return 'Trạng thái sản phẩm không hợp lệ'
    if 'category_id' in data:
        oid = parse_object_id(data['category_id'])
        if oid is None or not get_collection('categories').find_one({'_id': oid}):
            return 'Danh mục không tồn tại'
    return None


def _slug_for(name: str, exclude_id=None) -> str:
    products = _get_products_collection()

    def exists(slug):
        query = {'slug': slug}
        if exclude_id is not None:
            query['_id'] = {'$ne': exclude_id}
        return products.find_one(query) is not None

    return unique_slug(slugify(name, 'san-pham'), exists)


# Public routes

@products_bp.route('/', methods=['GET'])
@optional_auth
def list_products():
    """List active products with filtering, fuzzy search, sorting and pagination"""
    try:
        products_collection = _get_products_collection()
        if products_collection is None:
            return jsonify({'success': False, 'message': 'Database not available'}), 503

        page, limit, skip = get_page_params(request.args, default_limit=12)

        query = {'status': ProductStatus.ACTIVE.value}
        category = request.args.get('category')
        if category:
            query['category_id'] = category
        min_price = request.args.get('min_price', type=float)
        max_price = request.args.get('max_price', type=float)
        if min_price is not None or max_price is not None:
            query['price'] = {}
            if min_price is not None:
                query['price']['$gte'] = min_price
            if max_price is not None:
                query['price']['$lte'] = max_price
        district = request.args.get('district')
        if district:
            query['hometown_origin.district'] = district
        if request.args.get('featured') == 'true':
            query['featured'] = True

        sort = SORT_OPTIONS.get(request.args.get('sort', 'newest'), SORT_OPTIONS['newest'])
        search = (request.args.get('search') or '').strip()

        if search:
            # tone-insensitive ranking happens in Python over the filtered set
            candidates = list(products_collection.find(query).sort(sort))
            ranked = rank_by_relevance(candidates, search, SEARCH_KEYS)
            total = len(ranked)
            docs = ranked[skip:skip + limit]
        else:
            total = products_collection.count_documents(query)
            docs = products_collection.find(query).sort(sort).skip(skip).limit(limit)

        return jsonify({
            'success': True,
            'message': 'OK',
            'data': _to_public_list(docs, _current_user_id()),
            'pagination': pagination_dict(page, limit, total)
        })

    except Exception as e:
        logger.exception("List products failed: %s", e)
        return jsonify({'success': False, 'message': str(e)}), 500


@products_bp.route('/best-sellers', methods=['GET'])
@optional_auth
def best_sellers():
    try:
        limit = max(min(request.args.get('limit', 8, type=int), 50), 1)
        docs = _get_products_collection().find({'status': ProductStatus.ACTIVE.value}) \
            .sort(SORT_OPTIONS['best_selling']).limit(limit)
        return jsonify({'success': True, 'message': 'OK', 'data': _to_public_list(docs, _current_user_id())})

    except Exception as e:
        logger.exception("Best sellers failed: %s", e)
        return jsonify({'success': False, 'message': str(e)}), 500


@products_bp.route('/discounts', methods=['GET'])
@optional_auth
def discounted_products():
    """Products on sale, largest relative discount first"""
    try:
        limit = max(min(request.args.get('limit', 8, type=int), 50), 1)
        docs = [
            doc for doc in _get_products_collection().find(
                {'status': ProductStatus.ACTIVE.value, 'sale_price': {'$gt': 0}})
            if doc.get('price') and doc['sale_price'] < doc['price']
        ]
        docs.sort(key=lambda d: (d['price'] - d['sale_price']) / d['price'], reverse=True)
        return jsonify({'success': True, 'message': 'OK', 'data': _to_public_list(docs[:limit], _current_user_id())})

    except Exception as e:
        logger.exception("Discounted products failed: %s", e)
        return jsonify({'success': False, 'message': str(e)}), 500


@products_bp.route('/newest', methods=['GET'])
@optional_auth
def newest_products():
    try:
        limit = max(min(request.args.get('limit', 8, type=int), 50), 1)
        docs = _get_products_collection().find({'status': ProductStatus.ACTIVE.value}) \
            .sort('created_at', -1).limit(limit)
        return jsonify({'success': True, 'message': 'OK', 'data': _to_public_list(docs, _current_user_id())})

    except Exception as e:
        logger.exception("Newest products failed: %s", e)
        return jsonify({'success': False, 'message': str(e)}), 500


@products_bp.route('/byCategory/<category_id>', methods=['GET'])
@optional_auth
def products_by_category(category_id: str):
    try:
        if parse_object_id(category_id) is None:
            return jsonify({'success': False, 'message': 'ID danh mục không hợp lệ'}), 400

        page, limit, skip = get_page_params(request.args, default_limit=12)
        query = {'category_id': category_id, 'status': ProductStatus.ACTIVE.value}
        products_collection = _get_products_collection()
        total = products_collection.count_documents(query)
        docs = products_collection.find(query).sort('created_at', -1).skip(skip).limit(limit)
        return jsonify({
            'success': True,
            'message': 'OK',
            'data': _to_public_list(docs, _current_user_id()),
            'pagination': pagination_dict(page, limit, total)
        })

    except Exception as e:
        logger.exception("Products by category failed: %s", e)
        return jsonify({'success': False, 'message': str(e)}), 500


@products_bp.route('/favorites', methods=['GET'])
@require_auth
def my_favorites():
    try:
        user_id = request.user_info['userId']
        docs = list(_get_products_collection().find({'favorites.user_id': user_id}))

        def added_at(doc):
            entry = next((f for f in doc.get('favorites', []) if f.get('user_id') == user_id), {})
            return entry.get('added_at') or datetime.min.replace(tzinfo=timezone.utc)

        docs.sort(key=lambda d: _aware(added_at(d)), reverse=True)
        return jsonify({'success': True, 'message': 'OK', 'data': _to_public_list(docs, user_id)})

    except Exception as e:
        logger.exception("Favorites failed: %s", e)
        return jsonify({'success': False, 'message': str(e)}), 500


@products_bp.route('/viewed', methods=['GET'])
@require_auth
def recently_viewed():
    """Products the user viewed, most recent first, one entry per product"""
    try:
        user_id = request.user_info['userId']
        limit = max(min(request.args.get('limit', 10, type=int), 50), 1)
        docs = list(_get_products_collection().find({'views.user_id': user_id}))

        def last_viewed(doc):
            times = [_aware(v['viewed_at']) for v in doc.get('views', [])
                     if v.get('user_id') == user_id and v.get('viewed_at')]
            return max(times) if times else datetime.min.replace(tzinfo=timezone.utc)

        docs.sort(key=last_viewed, reverse=True)
        return jsonify({'success': True, 'message': 'OK', 'data': _to_public_list(docs[:limit], user_id)})

    except Exception as e:
        logger.exception("Viewed products failed: %s", e)
        return jsonify({'success': False, 'message': str(e)}), 500


def _aware(value: datetime) -> datetime:
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


@products_bp.route('/<id_or_slug>', methods=['GET'])
@optional_auth
def get_product(id_or_slug: str):
    """Get a product by id or slug and record the view"""
    try:
        products_collection = _get_products_collection()
        doc = _find_product(id_or_slug)
        if not doc:
            return jsonify({'success': False, 'message': 'Không tìm thấy sản phẩm'}), 404

        user_id = _current_user_id()
        inc = {'view_count': 1}
        if user_id:
            seen_before = any(v.get('user_id') == user_id for v in doc.get('views', []))
            if not seen_before:
                inc['unique_view_count'] = 1
            products_collection.update_one({'_id': doc['_id']}, {'$pull': {'views': {'user_id': user_id}}})
            products_collection.update_one(
                {'_id': doc['_id']},
                {'$push': {'views': {'user_id': user_id, 'viewed_at': datetime.now(timezone.utc)}}}
            )
        products_collection.update_one({'_id': doc['_id']}, {'$inc': inc})

        doc = products_collection.find_one({'_id': doc['_id']})
        data = _to_public_list([doc], user_id)[0]
        return jsonify({'success': True, 'message': 'OK', 'data': data})

    except Exception as e:
        logger.exception("Get product failed: %s", e)
        return jsonify({'success': False, 'message': str(e)}), 500


@products_bp.route('/<product_id>/similar', methods=['GET'])
@optional_auth
def similar_products(product_id: str):
    try:
        doc = _find_product(product_id)
        if not doc:
            return jsonify({'success': False, 'message': 'Không tìm thấy sản phẩm'}), 404

        limit = max(min(request.args.get('limit', 8, type=int), 50), 1)
        docs = _get_products_collection().find({
            'category_id': doc.get('category_id'),
            'status': ProductStatus.ACTIVE.value,
            '_id': {'$ne': doc['_id']},
        }).sort('sold_quantity', -1).limit(limit)
        return jsonify({'success': True, 'message': 'OK', 'data': _to_public_list(docs, _current_user_id())})

    except Exception as e:
        logger.exception("Similar products failed: %s", e)
        return jsonify({'success': False, 'message': str(e)}), 500


@products_bp.route('/<product_id>/stats', methods=['GET'])
def product_stats(product_id: str):
    try:
        doc = _find_product(product_id)
        if not doc:
            return jsonify({'success': False, 'message': 'Không tìm thấy sản phẩm'}), 404

        ratings = [r['rating'] for r in get_collection('ratings').find(
            {'product_id': str(doc['_id']), 'status': 'visible'}, {'rating': 1})]
        return jsonify({
            'success': True,
            'message': 'OK',
            'data': {
                'view_count': doc.get('view_count', 0),
                'unique_view_count': doc.get('unique_view_count', 0),
                'favorite_count': len(doc.get('favorites', [])),
                'purchase_count': doc.get('purchase_count', 0),
                'sold_quantity': doc.get('sold_quantity', 0),
                'buyer_count': len(doc.get('purchase_users', [])),
                'average_rating': round(sum(ratings) / len(ratings), 1) if ratings else 0,
                'total_ratings': len(ratings),
            }
        })

    except Exception as e:
        logger.exception("Product stats failed: %s", e)
        return jsonify({'success': False, 'message': str(e)}), 500


@products_bp.route('/<product_id>/favorite', methods=['POST'])
@require_auth
def toggle_favorite(product_id: str):
    try:
        oid = parse_object_id(product_id)
        if oid is None:
            return jsonify({'success': False, 'message': 'ID sản phẩm không hợp lệ'}), 400

        products_collection = _get_products_collection()
        doc = products_collection.find_one({'_id': oid})
        if not doc:
            return jsonify({'success': False, 'message': 'Không tìm thấy sản phẩm'}), 404

        user_id = request.user_info['userId']
        if any(f.get('user_id') == user_id for f in doc.get('favorites', [])):
            products_collection.update_one({'_id': oid}, {'$pull': {'favorites': {'user_id': user_id}}})
            is_favorited = False
        else:
            products_collection.update_one(
                {'_id': oid},
                {'$push': {'favorites': {'user_id': user_id, 'added_at': datetime.now(timezone.utc)}}}
            )
            is_favorited = True

        favorite_count = len(products_collection.find_one({'_id': oid}).get('favorites', []))
        return jsonify({
            'success': True,
            'message': 'Đã thêm vào yêu thích' if is_favorited else 'Đã bỏ yêu thích',
            'is_favorited': is_favorited,
            'favorite_count': favorite_count
        })

    except Exception as e:
        logger.exception("Toggle favorite failed: %s", e)
        return jsonify({'success': False, 'message': str(e)}), 500


# Seller routes

@products_bp.route('/', methods=['POST'])
@require_seller
def create_product():
    """Create a product and notify customers"""
    try:
        data = request.get_json(silent=True)
        if not data:
            return jsonify({'success': False, 'message': 'No data provided'}), 400

        error = _validate_product_fields(data)
        if error:
            return jsonify({'success': False, 'message': error}), 400

        stock = int(data.get('stock_quantity', 0))
        price = float(data['price'])
        sale_price = float(data['sale_price']) if data.get('sale_price') not in (None, '') else None
        if sale_price is not None and sale_price >= price:
            return jsonify({'success': False, 'message': 'Giá khuyến mãi phải nhỏ hơn giá gốc'}), 400

        name = data['name'].strip()
        product = Product(
            name=name,
            slug=_slug_for(name),
            price=price,
            sale_price=sale_price,
            category_id=data['category_id'],
            description=data.get('description', ''),
            short_description=data.get('short_description', ''),
            stock_quantity=stock,
            unit=data.get('unit', ''),
            status=_status_for_stock(stock, data.get('status')),
            featured=bool(data.get('featured', False)),
            hometown_origin=data.get('hometown_origin'),
            images=_normalize_images(data.get('images')),
        )
        doc = product.to_dict()
        result = _get_products_collection().insert_one(doc)
        doc['_id'] = result.inserted_id
        product._id = str(result.inserted_id)

        try:
            notification_service.notify_new_product(doc)
        except Exception as notify_error:  # pylint: disable=broad-except
            logger.error("New product notification failed: %s", notify_error)

        return jsonify({
            'success': True,
            'message': 'Tạo sản phẩm thành công',
            'data': product.to_public_dict()
        }), 201

    except Exception as e:
        logger.exception("Create product failed: %s", e)
        return jsonify({'success': False, 'message': str(e)}), 500


@products_bp.route('/<product_id>', methods=['PUT'])
@require_seller
def update_product(product_id: str):
    try:
        oid = parse_object_id(product_id)
        if oid is None:
            return jsonify({'success': False, 'message': 'ID sản phẩm không hợp lệ'}), 400

        data = request.get_json(silent=True) or {}
        error = _validate_product_fields(data, partial=True)
        if error:
            return jsonify({'success': False, 'message': error}), 400

        products_collection = _get_products_collection()
        doc = products_collection.find_one({'_id': oid})
        if not doc:
            return jsonify({'success': False, 'message': 'Không tìm thấy sản phẩm'}), 404

        update = {}
        for field in ('description', 'short_description', 'unit', 'hometown_origin', 'category_id'):
            if field in data:
                update[field] = data[field]
        if 'featured' in data:
            update['featured'] = bool(data['featured'])
        if 'name' in data:
            name = data['name'].strip()
            update['name'] = name
            if name != doc.get('name'):
                update['slug'] = _slug_for(name, exclude_id=oid)
        if 'price' in data:
            update['price'] = float(data['price'])
        if 'sale_price' in data:
            update['sale_price'] = float(data['sale_price']) if data['sale_price'] not in (None, '') else None
        if 'images' in data:
            update['images'] = _normalize_images(data['images'])
        if 'stock_quantity' in data:
            update['stock_quantity'] = int(data['stock_quantity'])

        price = update.get('price', doc.get('price', 0))
        sale_price = update.get('sale_price', doc.get('sale_price'))
        if sale_price is not None and sale_price >= price:
            return jsonify({'success': False, 'message': 'Giá khuyến mãi phải nhỏ hơn giá gốc'}), 400

        stock = update.get('stock_quantity', doc.get('stock_quantity', 0))
        update['status'] = _status_for_stock(stock, data.get('status', doc.get('status')))
        update['updated_at'] = datetime.now(timezone.utc)

        products_collection.update_one({'_id': oid}, {'$set': update})
        doc = products_collection.find_one({'_id': oid})
        return jsonify({
            'success': True,
            'message': 'Cập nhật sản phẩm thành công',
            'data': _to_public_list([doc])[0]
        })

    except Exception as e:
        logger.exception("Update product failed: %s", e)
        return jsonify({'success': False, 'message': str(e)}), 500


@products_bp.route('/<product_id>', methods=['DELETE'])
@require_seller
def delete_product(product_id: str):
    try:
        oid = parse_object_id(product_id)
        if oid is None:
            return jsonify({'success': False, 'message': 'ID sản phẩm không hợp lệ'}), 400

        result = _get_products_collection().delete_one({'_id': oid})
        if result.deleted_count == 0:
            return jsonify({'success': False, 'message': 'Không tìm thấy sản phẩm'}), 404

        get_collection('cart_items').delete_many({'product_id': product_id})
        return jsonify({'success': True, 'message': 'Xóa sản phẩm thành công'})

    except Exception as e:
        logger.exception("Delete product failed: %s", e)
        return jsonify({'success': False, 'message': str(e)}), 500
