"""
Chatbot Service
Shopping assistant: keyword intent detection, product lookup and a Groq chat completion
"""

from __future__ import annotations
import logging
import re
from typing import List, Optional

from flask import current_app

from db import get_collection, parse_object_id
from utils.text import rank_by_relevance

logger = logging.getLogger(__name__)

FALLBACK_RESPONSE = ("Xin lỗi anh/chị, hệ thống đang gặp sự cố. Vui lòng thử lại sau "
                     "hoặc liên hệ trực tiếp để được hỗ trợ.")
EMPTY_RESPONSE = ("Xin lỗi anh/chị, hiện tại tôi không thể trả lời câu hỏi này. "
                  "Vui lòng liên hệ trực tiếp để được hỗ trợ tốt nhất.")

SYSTEM_PROMPT = """Bạn là trợ lý AI chuyên nghiệp của cửa hàng thực phẩm hữu cơ và đặc sản Phú Yên.

NHIỆM VỤ:
1. Trả lời câu hỏi khách hàng một cách thân thiện, chuyên nghiệp
2. Đưa ra gợi ý sản phẩm phù hợp từ danh sách có sẵn
3. Nêu rõ lý do tại sao gợi ý những sản phẩm đó
4. Đưa ra thông tin giá, tình trạng kho, ưu đãi (nếu có)

NGUYÊN TẮC:
- Luôn gọi khách hàng bằng "anh/chị"
- Nêu rõ ID sản phẩm để khách hàng dễ tìm
- Ưu tiên sản phẩm còn hàng và có ưu đãi"""

NO_PRODUCTS_HINT = """

Hiện tại không tìm thấy sản phẩm phù hợp. Hãy xin lỗi và gợi ý khách hàng:
- Thử từ khóa khác
- Liên hệ để được tư vấn trực tiếp
- Xem các sản phẩm nổi bật khác"""

RESULT_LIMIT = 5


def detect_intent(query: str) -> str:
    q = (query or '').lower()
    if 'rẻ' in q or 'giá thấp' in q:
        return 'price_low'
    if 'bán chạy' in q or 'phổ biến' in q:
        return 'popular'
    if 'mới' in q:
        return 'newest'
    if 'nổi bật' in q or 'đặc sản' in q:
        return 'featured'
    if re.search(r'\d+', q) and any(word in q for word in ('dưới', 'từ', 'đến')):
        return 'price_range'
    return 'general'


def search_products(query: str, intent: Optional[str] = None) -> List[dict]:
    """Active products relevant to the query, chosen by intent"""
    products = get_collection('products')
    intent = intent or detect_intent(query)
    active = {'status': 'active'}

    if intent == 'price_low':
        return list(products.find(active).sort('price', 1).limit(RESULT_LIMIT))
    if intent == 'popular':
        return list(products.find(active).sort([('sold_quantity', -1), ('purchase_count', -1)]).limit(RESULT_LIMIT))
    if intent == 'newest':
        return list(products.find(active).sort('created_at', -1).limit(RESULT_LIMIT))
    if intent == 'featured':
        query_filter = {'status': 'active', '$or': [
            {'featured': True}, {'hometown_origin.district': {'$exists': True, '$nin': [None, '']}}]}
        return list(products.find(query_filter).limit(RESULT_LIMIT))
    if intent == 'price_range':
        q = query.lower()
        price = int(re.search(r'\d+', q).group()) * 1000
        price_filter = {'$lt': price} if 'dưới' in q else {'$gte': price}
        return list(products.find({'status': 'active', 'price': price_filter}).limit(RESULT_LIMIT))

    candidates = list(products.find(active).sort([('sold_quantity', -1), ('view_count', -1)]).limit(200))
    return rank_by_relevance(candidates, query, ['name', 'short_description', 'description'])[:RESULT_LIMIT + 1]


def format_products_for_context(products: List[dict]) -> str:
    if not products:
        return ""

    categories = {}
    category_ids = {parse_object_id(p.get('category_id')) for p in products if p.get('category_id')}
    category_ids.discard(None)
    if category_ids:
        for category in get_collection('categories').find({'_id': {'$in': list(category_ids)}}):
            categories[str(category['_id'])] = category.get('name')

    blocks = []
    for index, product in enumerate(products, start=1):
        price = float(product.get('price', 0))
        sale_price = product.get('sale_price')
        lines = [
            f"Sản phẩm {index}:",
            f"- ID: {product['_id']}",
            f"- Tên: {product.get('name')}",
            f"- Giá: {int(price):,} VNĐ".replace(',', '.'),
        ]
        if sale_price and 0 < sale_price < price:
            lines[-1] += f" (Giá khuyến mãi: {int(sale_price):,} VNĐ)".replace(',', '.')
        lines.append(f"- Danh mục: {categories.get(product.get('category_id'), 'Chưa phân loại')}")
        lines.append(f"- Tình trạng: {'Còn hàng' if product.get('stock_quantity', 0) > 0 else 'Hết hàng'}")
        lines.append(f"- Đã bán: {product.get('sold_quantity', 0)} sản phẩm")
        description = product.get('description') or ''
        lines.append(f"- Mô tả: {description[:100] + '...' if description else 'Không có mô tả'}")
        if product.get('featured'):
            lines.append("- Sản phẩm nổi bật")
        district = (product.get('hometown_origin') or {}).get('district')
        if district:
            lines.append(f"- Đặc sản từ {district}")
        blocks.append('\n'.join(lines))
    return '\n\n'.join(blocks)


def build_prompts(query: str, products: List[dict]) -> tuple[str, str]:
    if products:
        user_prompt = (f"Câu hỏi của khách hàng: \"{query}\"\n\nDANH SÁCH SẢN PHẨM PHÙ HỢP:\n"
                       f"{format_products_for_context(products)}\n\n"
                       "Hãy tư vấn cho khách hàng dựa trên danh sách sản phẩm trên.")
        return SYSTEM_PROMPT, user_prompt
    user_prompt = (f"Câu hỏi của khách hàng: \"{query}\"\n\n"
                   "Không tìm thấy sản phẩm phù hợp. Hãy trả lời thân thiện và gợi ý cách khác.")
    return SYSTEM_PROMPT + NO_PRODUCTS_HINT, user_prompt


def get_groq_client():
    """Groq client registered on the app; created lazily from GROQ_API_KEY"""
    client = current_app.config.get('groq_client')
    if client is not None:
        return client

    settings = current_app.config['settings']
    if not settings.groq_api_key:
        raise RuntimeError('GROQ_API_KEY not configured')

    from groq import Groq  # lazy import

    client = Groq(api_key=settings.groq_api_key, timeout=30.0)
    current_app.config['groq_client'] = client
    return client


def get_chatbot_response(query: str) -> dict:
    """Returns {response, products, metadata}; provider failures produce a fixed apology"""
    intent = detect_intent(query)
    try:
        products = search_products(query, intent)
        system_prompt, user_prompt = build_prompts(query, products)
        model = current_app.config['settings'].groq_model

        completion = get_groq_client().chat.completions.create(
            model=model,
            messages=[
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            temperature=0.7,
            max_tokens=1000,
        )
        content = (completion.choices[0].message.content or '').strip() if completion.choices else ''
        return {
            'response': content or EMPTY_RESPONSE,
            'products': products,
            'metadata': {
                'provider': 'groq',
                'model': model,
                'query': query,
                'productsFound': len(products),
                'searchType': intent,
            },
        }
    except Exception as e:  # pylint: disable=broad-except
        logger.error("Chatbot provider error: %s", e)
        return {
            'response': FALLBACK_RESPONSE,
            'products': [],
            'metadata': {'error': True, 'message': str(e), 'searchType': intent},
        }
