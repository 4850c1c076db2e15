"""
Setup Seller Account Script
Run this script once to create the store owner (seller) account

Usage: python setup_admin.py
"""

import sys

from config import get_settings
from db import connect, create_indexes
from models.user import User, UserRole
from utils.validators import validate_email, validate_name, validate_password


def create_seller():
    settings = get_settings()

    if not settings.mongodb_uri:
        print("❌ Error: MONGODB_URI not set in environment")
        print("Please set up your .env file first")
        return False

    try:
        db = connect(settings.mongodb_uri, settings.mongodb_db)
        create_indexes(db)
        users_collection = db['users']

        # Check if a seller already exists
        existing_seller = users_collection.find_one({'role': UserRole.SELLER.value})
        if existing_seller:
            print(f"✓ Seller account already exists: {existing_seller['email']}")
            return True

        print("\n=== Create Seller Account ===\n")

        email = input("Seller Email: ").strip().lower()
        is_valid, error = validate_email(email)
        if not is_valid:
            print(f"❌ {error}")
            return False

        if users_collection.find_one({'email': email}):
            print(f"❌ User with email {email} already exists")
            return False

        name = input("Full Name: ").strip()
        is_valid, error = validate_name(name)
        if not is_valid:
            print(f"❌ {error}")
            return False

        password = input("Password (min 8 chars, at least 1 letter and 1 number): ").strip()
        is_valid, errors = validate_password(password)
        if not is_valid:
            for message in errors:
                print(f"❌ {message}")
            return False

        confirm_password = input("Confirm Password: ").strip()
        if password != confirm_password:
            print("❌ Passwords do not match")
            return False

        seller = User(
            name=name,
            email=email,
            password_hash=User.hash_password(password),
            role=UserRole.SELLER,
            active=True,
        )

        result = users_collection.insert_one(seller.to_dict(include_password=True))

        print("\n✓ Seller account created successfully!")
        print(f"  Email: {email}")
        print(f"  Name: {name}")
        print(f"  ID: {result.inserted_id}")

        return True

    except Exception as e:
        print(f"❌ Error: {e}")
        return False


if __name__ == "__main__":
    success = create_seller()
    sys.exit(0 if success else 1)
