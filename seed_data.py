"""
Seed Data Script
Fills an empty database with categories, sample specialty products and hometown posts

Usage: python seed_data.py [--reset]
"""

import logging
import sys

import click

from config import get_settings
from db import connect, create_indexes
from models.category import Category
from models.hometown_post import HometownPost
from models.product import Product
from models.user import UserRole
from utils.text import slugify

logger = logging.getLogger(__name__)

CATEGORIES = [
    {'name': 'Hải sản', 'description': 'Đặc sản từ vùng biển Phú Yên'},
    {'name': 'Đặc sản núi', 'description': 'Đặc sản từ vùng núi Phú Yên'},
    {'name': 'Nông sản', 'description': 'Nông sản đồng bằng Phú Yên'},
]

PRODUCTS = [
    {
        'name': 'Cá ngừ đại dương', 'category': 'Hải sản', 'price': 350000, 'sale_price': 320000,
        'stock_quantity': 40, 'unit': 'kg', 'featured': True,
        'short_description': 'Cá ngừ câu tay đánh bắt ở vùng biển Phú Yên',
        'hometown_origin': {'district': 'Sông Cầu', 'terrain': 'biển'},
    },
    {
        'name': 'Mắm cá cơm Gành Đỏ', 'category': 'Hải sản', 'price': 95000,
        'stock_quantity': 120, 'unit': 'hũ',
        'short_description': 'Mắm ủ chượp truyền thống',
        'hometown_origin': {'district': 'Sông Cầu', 'terrain': 'biển'},
    },
    {
        'name': 'Mật ong rừng Sơn Hòa', 'category': 'Đặc sản núi', 'price': 280000,
        'stock_quantity': 25, 'unit': 'chai',
        'short_description': 'Mật ong khai thác từ rừng tự nhiên',
        'hometown_origin': {'district': 'Sơn Hòa', 'terrain': 'núi'},
    },
    {
        'name': 'Bánh tráng nước dừa', 'category': 'Nông sản', 'price': 45000, 'sale_price': 39000,
        'stock_quantity': 200, 'unit': 'xấp', 'featured': True,
        'short_description': 'Bánh tráng nướng thơm vị dừa',
        'hometown_origin': {'district': 'Tuy An', 'terrain': 'đồng bằng'},
    },
]

POSTS = [
    {
        'title': 'Khám phá Gành Đá Đĩa, kỳ quan địa chất của Phú Yên',
        'category': 'tourism',
        'location': {'district': 'Tuy An', 'specific_place': 'Gành Đá Đĩa'},
        'content': (
            '# Gành Đá Đĩa\n\n'
            'Gành Đá Đĩa nằm ở xã An Ninh Đông, huyện Tuy An, cách Tuy Hòa khoảng 30km về phía Bắc. '
            'Dung nham núi lửa gặp nước biển lạnh đã co ngót thành những khối đá lục giác xếp chồng '
            'lên nhau như những chồng đĩa khổng lồ.\n\n'
            'Thời điểm đẹp nhất để tham quan là mùa khô, từ tháng 3 đến tháng 8.'
        ),
    },
    {
        'title': 'Mắt cá ngừ đại dương, món ngon xứ Nẫu',
        'category': 'food',
        'location': {'district': 'Tuy Hòa', 'specific_place': ''},
        'content': (
            '# Mắt cá ngừ\n\n'
            'Mắt cá ngừ hầm thuốc bắc là món ăn nổi tiếng của Phú Yên. '
            'Món ăn bổ dưỡng, thường được dùng kèm rau thơm và bánh tráng.'
        ),
    },
    {
        'title': 'Hội đua ngựa Gò Thì Thùng',
        'category': 'festival',
        'location': {'district': 'Tuy An', 'specific_place': 'Gò Thì Thùng'},
        'content': (
            '# Hội đua ngựa Gò Thì Thùng\n\n'
            'Hội đua ngựa được tổ chức vào mùng 9 tháng Giêng hằng năm tại xã An Xuân, '
            'thu hút đông đảo người dân và du khách.'
        ),
    },
]


def seed_categories(db) -> dict:
    """Insert missing categories; returns {name: id}"""
    ids = {}
    for item in CATEGORIES:
        slug = slugify(item['name'])
        existing = db['categories'].find_one({'slug': slug})
        if existing:
            ids[item['name']] = str(existing['_id'])
            continue
        category = Category(name=item['name'], slug=slug, description=item['description'])
        ids[item['name']] = str(db['categories'].insert_one(category.to_dict()).inserted_id)
    return ids


def seed_products(db, category_ids: dict) -> int:
    count = 0
    for item in PRODUCTS:
        slug = slugify(item['name'])
        if db['products'].find_one({'slug': slug}):
            continue
        fields = {k: v for k, v in item.items() if k != 'category'}
        product = Product(slug=slug, category_id=category_ids[item['category']], **fields)
        db['products'].insert_one(product.to_dict())
        count += 1
    return count


def seed_posts(db, author_id: str) -> int:
    count = 0
    for item in POSTS:
        slug = slugify(item['title'])
        if db['hometown_posts'].find_one({'slug': slug}):
            continue
        post = HometownPost(slug=slug, author_id=author_id, status='published', **item)
        db['hometown_posts'].insert_one(post.to_dict())
        count += 1
    return count


def seed(db, reset: bool = False) -> dict:
    if reset:
        for name in ('categories', 'products', 'hometown_posts'):
            db[name].delete_many({})

    category_ids = seed_categories(db)
    products = seed_products(db, category_ids)

    seller = db['users'].find_one({'role': UserRole.SELLER.value})
    posts = seed_posts(db, str(seller['_id'])) if seller else 0
    if not seller:
        logger.warning("No seller account found; run setup_admin.py before seeding hometown posts")

    return {'categories': len(category_ids), 'products': products, 'posts': posts}


@click.command()
@click.option('--reset', is_flag=True, help='Remove existing categories, products and posts first.')
def main(reset):
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s [%(name)s] %(message)s")
    settings = get_settings()
    if not settings.mongodb_uri:
        click.echo("❌ Error: MONGODB_URI not set in environment")
        sys.exit(1)

    db = connect(settings.mongodb_uri, settings.mongodb_db)
    create_indexes(db)
    result = seed(db, reset=reset)
    click.echo(f"✓ Seeded {result['categories']} categories, {result['products']} products, "
               f"{result['posts']} hometown posts")


if __name__ == "__main__":
    main()
