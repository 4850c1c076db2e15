"""
Input Validators
Validates user input for registration, profiles, addresses and checkout
"""

import re
from typing import Tuple, List, Optional


def validate_email(email: str) -> Tuple[bool, str]:
    """
    Validate email format
    Returns (is_valid, error_message)
    """
    if not email:
        return False, "Email là bắt buộc"

    email = email.strip().lower()

    email_pattern = r'^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$'

    if not re.match(email_pattern, email):
        return False, "Email không hợp lệ"

    if len(email) > 254:
        return False, "Email quá dài"

    return True, ""


def validate_password(password: str) -> Tuple[bool, List[str]]:
    """
    Validate password strength
    Returns (is_valid, list_of_errors)
    Requirements:
    - At least 8 characters
    - At least one letter
    - At least one number
    """
    errors = []

    if not password:
        return False, ["Mật khẩu là bắt buộc"]

    if len(password) < 8:
        errors.append("Mật khẩu phải có ít nhất 8 ký tự")

    if len(password) > 128:
        errors.append("Mật khẩu không được vượt quá 128 ký tự")

    if not re.search(r'[A-Za-z]', password):
        errors.append("Mật khẩu phải chứa ít nhất một chữ cái")

    if not re.search(r'\d', password):
        errors.append("Mật khẩu phải chứa ít nhất một chữ số")

    return len(errors) == 0, errors


def validate_phone(phone: str) -> Tuple[bool, str]:
    """
    Validate Vietnamese mobile number format
    Returns (is_valid, error_message)
    Accepts formats: 0xxxxxxxxx, +84xxxxxxxxx
    """
    if not phone:
        return True, ""  # Phone is optional

    phone = phone.strip().replace(" ", "").replace("-", "").replace(".", "")

    if re.match(r'^(0|\+84)(3|5|7|8|9)\d{8}$', phone):
        return True, ""

    return False, "Số điện thoại không hợp lệ (ví dụ: 0912345678)"


def validate_required_fields(data: dict, required_fields: List[str]) -> Tuple[bool, List[str]]:
    """
    Validate that all required fields are present and not empty
    Returns (is_valid, list_of_missing_fields)
    """
    missing = []

    for field in required_fields:
        value = data.get(field)
        if value is None or (isinstance(value, str) and value.strip() == ""):
            missing.append(f"Thiếu trường bắt buộc: {field}")

    return len(missing) == 0, missing


def validate_name(name: str, field_name: str = "Tên") -> Tuple[bool, str]:
    """
    Validate person names; Vietnamese letters with diacritics are allowed
    Returns (is_valid, error_message)
    """
    if not name:
        return False, f"{field_name} là bắt buộc"

    name = name.strip()

    if len(name) < 2:
        return False, f"{field_name} phải có ít nhất 2 ký tự"

    if len(name) > 100:
        return False, f"{field_name} không được vượt quá 100 ký tự"

    if not re.match(r"^[^\W\d_]+(?:[\s\-'][^\W\d_]+)*$", name):
        return False, f"{field_name} chỉ được chứa chữ cái, khoảng trắng, dấu gạch ngang và dấu nháy"

    return True, ""


def validate_username(username: str) -> Tuple[bool, str]:
    if not username:
        return True, ""
    if not re.match(r'^[a-zA-Z0-9_.]{3,30}$', username):
        return False, "Tên đăng nhập chỉ gồm 3-30 ký tự chữ, số, dấu chấm hoặc gạch dưới"
    return True, ""


def validate_positive_number(value, field_name: str = "Giá trị", min_val: float = 0, max_val: Optional[float] = None) -> Tuple[bool, str]:
    """
    Validate that a value is a number within bounds
    Returns (is_valid, error_message)
    """
    try:
        num = float(value)
    except (ValueError, TypeError):
        return False, f"{field_name} phải là số hợp lệ"

    if num < min_val:
        return False, f"{field_name} phải lớn hơn hoặc bằng {min_val}"

    if max_val is not None and num > max_val:
        return False, f"{field_name} không được vượt quá {max_val}"

    return True, ""


def validate_rating(rating) -> Tuple[bool, str]:
    """
    Validate rating (1-5)
    Returns (is_valid, error_message)
    """
    try:
        rating = int(rating)
    except (ValueError, TypeError):
        return False, "Số sao phải là số từ 1 đến 5"

    if rating < 1 or rating > 5:
        return False, "Số sao phải từ 1 đến 5"

    return True, ""


def validate_otp(otp) -> Tuple[bool, str]:
    if not otp or not re.match(r'^\d{6}$', str(otp).strip()):
        return False, "Mã OTP phải gồm 6 chữ số"
    return True, ""
