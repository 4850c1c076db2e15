"""
Authentication Routes
Handles registration with OTP, login, token refresh and password recovery
"""

from __future__ import annotations
from datetime import datetime, timezone
from functools import wraps
import logging

from flask import Blueprint, current_app, jsonify, request

from db import get_collection, parse_object_id
from extensions import get_redis
from models.user import User, UserRole
from utils.email_service import get_email_service
from utils.otp_store import OtpStore, PURPOSE_FORGOT, PURPOSE_REGISTER
from utils.tokens import (
    create_access_token,
    create_refresh_token,
    decode_access_token,
    decode_refresh_token,
    user_info_from_payload,
)
from utils.validators import (
    validate_email,
    validate_password,
    validate_required_fields,
    validate_name,
    validate_otp,
)

logger = logging.getLogger(__name__)

auth_bp = Blueprint('auth', __name__, url_prefix='/api/auth')


def _settings():
    return current_app.config['settings']


def _extract_token(req) -> str | None:
    auth_header = req.headers.get('Authorization', '')
    if auth_header.startswith('Bearer '):
        return auth_header[7:].strip() or None
    return None


def get_current_user(req) -> dict | None:
    """Get user info ({userId, email, role}) from a valid access token"""
    token = _extract_token(req)
    if not token:
        return None
    payload = decode_access_token(_settings(), token)
    if not payload:
        return None
    return user_info_from_payload(payload)


def require_auth(f):
    """Decorator to require authentication"""
    @wraps(f)
    def decorated(*args, **kwargs):
        token = _extract_token(request)
        if not token:
            return jsonify({'success': False, 'message': 'Unauthenticated'}), 401
        payload = decode_access_token(_settings(), token)
        if not payload:
            return jsonify({'success': False, 'message': 'Token không hợp lệ hoặc đã hết hạn'}), 403
        request.user_info = user_info_from_payload(payload)
        return f(*args, **kwargs)
    return decorated


def require_seller(f):
    """Decorator to require the seller role"""
    @wraps(f)
    @require_auth
    def decorated(*args, **kwargs):
        if request.user_info.get('role') != UserRole.SELLER.value:
            return jsonify({'success': False, 'message': 'Chỉ người bán mới có quyền truy cập'}), 403
        return f(*args, **kwargs)
    return decorated


def optional_auth(f):
    """Attach user info when a valid token is present, otherwise continue anonymously"""
    @wraps(f)
    def decorated(*args, **kwargs):
        request.user_info = get_current_user(request)
        return f(*args, **kwargs)
    return decorated


def _get_otp_store() -> OtpStore | None:
    client = get_redis()
    if client is None:
        return None
    settings = _settings()
    return OtpStore(client, ttl=settings.otp_ttl, cooldown=settings.otp_cooldown)


def _issue_tokens(users_collection, user_doc: dict, device_info: str = '', replace_token: str | None = None) -> dict:
    """Create an access/refresh pair and record the refresh token on the user"""
    settings = _settings()
    user_id = str(user_doc['_id'])
    role = user_doc.get('role', UserRole.USER.value)
    access_token = create_access_token(settings, user_id, user_doc['email'], role)
    refresh_token = create_refresh_token(settings, user_id, user_doc['email'], role)

    tokens = [t for t in user_doc.get('refresh_tokens', []) if t.get('token') != replace_token]
    tokens.append(User.new_refresh_entry(refresh_token, settings.refresh_token_life, device_info))
    tokens = User.capped_refresh_tokens(tokens, settings.max_refresh_tokens)

    users_collection.update_one(
        {'_id': user_doc['_id']},
        {'$set': {'refresh_tokens': tokens, 'updated_at': datetime.now(timezone.utc)}}
    )
    return {'accessToken': access_token, 'refreshToken': refresh_token}


def _with_refresh_cookie(response, refresh_token: str | None):
    settings = _settings()
    if refresh_token:
        response.set_cookie('refreshToken', refresh_token, max_age=settings.refresh_token_life,
                            httponly=True, samesite='Lax', secure=not settings.debug)
    else:
        response.delete_cookie('refreshToken')
    return response


def _normalize_email(data: dict) -> str:
    return (data.get('email') or '').strip().lower()


@auth_bp.route('/register', methods=['POST'])
def register():
    """
    Register a new (inactive) user and email an OTP
    Required fields: name, email, password
    """
    try:
        data = request.get_json(silent=True)
        if not data:
            return jsonify({'success': False, 'message': 'No data provided'}), 400

        is_valid, missing = validate_required_fields(data, ['name', 'email', 'password'])
        if not is_valid:
            return jsonify({'success': False, 'message': 'Name, Email và Password là bắt buộc',
                            'errors': missing}), 400

        email = _normalize_email(data)
        is_valid, error = validate_email(email)
        if not is_valid:
            return jsonify({'success': False, 'message': error}), 400

        is_valid, errors = validate_password(data.get('password', ''))
        if not is_valid:
            return jsonify({'success': False, 'message': errors[0], 'errors': errors}), 400

        name = data.get('name', '').strip()
        is_valid, error = validate_name(name)
        if not is_valid:
            return jsonify({'success': False, 'message': error}), 400

        users_collection = get_collection('users')
        if users_collection is None:
            return jsonify({'success': False, 'message': 'Database not available'}), 503

        if users_collection.find_one({'email': email}):
            return jsonify({'success': False, 'message': 'Email đã được sử dụng'}), 400

        otp_store = _get_otp_store()
        if otp_store is None:
            return jsonify({'success': False, 'message': 'OTP service not available'}), 503

        user = User(
            name=name,
            email=email,
            password_hash=User.hash_password(data['password']),
            role=UserRole.USER,
            active=False,
        )
        result = users_collection.insert_one(user.to_dict(include_password=True))
        user._id = str(result.inserted_id)

        code = otp_store.issue(PURPOSE_REGISTER, email)
        sent = get_email_service().send_otp(email, code, PURPOSE_REGISTER, name)
        message = ('Đăng ký thành công. Vui lòng kiểm tra email để lấy mã OTP.' if sent
                   else 'Đăng ký thành công nhưng gửi OTP thất bại. Vui lòng gửi lại OTP.')

        return jsonify({
            'success': True,
            'message': message,
            'otpSent': sent,
            'user': user.to_public_dict()
        }), 201

    except Exception as e:
        logger.exception("Register failed: %s", e)
        return jsonify({'success': False, 'message': 'Đăng ký thất bại'}), 500


@auth_bp.route('/register/resend-otp', methods=['POST'])
def resend_register_otp():
    try:
        data = request.get_json(silent=True) or {}
        email = _normalize_email(data)
        if not email:
            return jsonify({'success': False, 'message': 'Email là bắt buộc'}), 400

        user_doc = get_collection('users').find_one({'email': email})
        if not user_doc:
            return jsonify({'success': False, 'message': 'Không tìm thấy tài khoản'}), 404
        if user_doc.get('active'):
            return jsonify({'success': False, 'message': 'Tài khoản đã được kích hoạt'}), 400

        otp_store = _get_otp_store()
        if otp_store is None:
            return jsonify({'success': False, 'message': 'OTP service not available'}), 503

        remaining = otp_store.cooldown_remaining(PURPOSE_REGISTER, email)
        if remaining:
            return jsonify({'success': False, 'message': f'Vui lòng đợi {remaining} giây trước khi gửi lại OTP',
                            'retryAfter': remaining}), 429

        code = otp_store.issue(PURPOSE_REGISTER, email)
        get_email_service().send_otp(email, code, PURPOSE_REGISTER, user_doc.get('name', ''))
        return jsonify({'success': True, 'message': 'Đã gửi lại mã OTP'})

    except Exception as e:
        logger.exception("Resend OTP failed: %s", e)
        return jsonify({'success': False, 'message': 'Gửi lại OTP thất bại'}), 500


@auth_bp.route('/register/verify-otp', methods=['POST'])
def verify_register_otp():
    try:
        data = request.get_json(silent=True) or {}
        email = _normalize_email(data)
        otp = str(data.get('otp', '')).strip()
        if not email or not otp:
            return jsonify({'success': False, 'message': 'Email và OTP là bắt buộc'}), 400

        otp_store = _get_otp_store()
        if otp_store is None:
            return jsonify({'success': False, 'message': 'OTP service not available'}), 503

        ok, error = otp_store.verify(PURPOSE_REGISTER, email, otp)
        if not ok:
            return jsonify({'success': False, 'message': error}), 400

        result = get_collection('users').update_one(
            {'email': email},
            {'$set': {'active': True, 'updated_at': datetime.now(timezone.utc)}}
        )
        if result.matched_count == 0:
            return jsonify({'success': False, 'message': 'Không tìm thấy tài khoản'}), 404

        return jsonify({'success': True, 'message': 'Xác thực thành công, tài khoản đã được kích hoạt'})

    except Exception as e:
        logger.exception("Verify OTP failed: %s", e)
        return jsonify({'success': False, 'message': 'Xác thực OTP thất bại'}), 500


@auth_bp.route('/login', methods=['POST'])
def login():
    """Login with email and password"""
    try:
        data = request.get_json(silent=True)
        if not data:
            return jsonify({'success': False, 'message': 'No data provided'}), 400

        email = _normalize_email(data)
        password = data.get('password', '')
        if not email or not password:
            return jsonify({'success': False, 'message': 'Email và mật khẩu là bắt buộc'}), 400

        users_collection = get_collection('users')
        if users_collection is None:
            return jsonify({'success': False, 'message': 'Database not available'}), 503

        user_doc = users_collection.find_one({'email': email})
        if not user_doc:
            return jsonify({'success': False, 'message': 'Email không tồn tại'}), 404

        if not User.verify_password(password, user_doc.get('password_hash', '')):
            return jsonify({'success': False, 'message': 'Mật khẩu không chính xác'}), 401

        if not user_doc.get('active'):
            return jsonify({'success': False, 'message': 'Tài khoản chưa được kích hoạt hoặc đã bị khóa'}), 401

        device_info = request.headers.get('User-Agent', '')[:255]
        tokens = _issue_tokens(users_collection, user_doc, device_info)

        now = datetime.now(timezone.utc)
        users_collection.update_one({'_id': user_doc['_id']}, {'$set': {'last_login': now}})
        user_doc['last_login'] = now

        response = jsonify({
            'success': True,
            'message': 'Đăng nhập thành công',
            'user': User.from_dict(user_doc).to_public_dict(),
            **tokens
        })
        return _with_refresh_cookie(response, tokens['refreshToken'])

    except Exception as e:
        logger.exception("Login failed: %s", e)
        return jsonify({'success': False, 'message': 'Đăng nhập thất bại'}), 500


@auth_bp.route('/refresh-token', methods=['POST'])
def refresh_token():
    """Rotate a refresh token: the presented one is revoked and a new pair returned"""
    try:
        data = request.get_json(silent=True) or {}
        token = data.get('refreshToken') or request.cookies.get('refreshToken')
        if not token:
            return jsonify({'success': False, 'message': 'Refresh token là bắt buộc'}), 401

        payload = decode_refresh_token(_settings(), token)
        if not payload:
            return jsonify({'success': False, 'message': 'Refresh token không hợp lệ hoặc đã hết hạn'}), 403

        users_collection = get_collection('users')
        user_doc = users_collection.find_one({'_id': parse_object_id(payload.get('userId'))})
        if not user_doc or not any(t.get('token') == token for t in user_doc.get('refresh_tokens', [])):
            return jsonify({'success': False, 'message': 'Refresh token đã bị thu hồi'}), 403

        if not user_doc.get('active'):
            return jsonify({'success': False, 'message': 'Tài khoản đã bị khóa'}), 403

        tokens = _issue_tokens(users_collection, user_doc, request.headers.get('User-Agent', '')[:255],
                               replace_token=token)
        response = jsonify({'success': True, 'message': 'Làm mới token thành công', **tokens})
        return _with_refresh_cookie(response, tokens['refreshToken'])

    except Exception as e:
        logger.exception("Refresh token failed: %s", e)
        return jsonify({'success': False, 'message': 'Làm mới token thất bại'}), 500


@auth_bp.route('/logout', methods=['POST'])
@require_auth
def logout():
    try:
        data = request.get_json(silent=True) or {}
        token = data.get('refreshToken') or request.cookies.get('refreshToken')
        if token:
            get_collection('users').update_one(
                {'_id': parse_object_id(request.user_info['userId'])},
                {'$pull': {'refresh_tokens': {'token': token}}}
            )
        return _with_refresh_cookie(jsonify({'success': True, 'message': 'Đăng xuất thành công'}), None)

    except Exception as e:
        logger.exception("Logout failed: %s", e)
        return jsonify({'success': False, 'message': 'Đăng xuất thất bại'}), 500


@auth_bp.route('/logout-all', methods=['POST'])
@require_auth
def logout_all():
    try:
        get_collection('users').update_one(
            {'_id': parse_object_id(request.user_info['userId'])},
            {'$set': {'refresh_tokens': []}}
        )
        return _with_refresh_cookie(
            jsonify({'success': True, 'message': 'Đã đăng xuất khỏi tất cả thiết bị'}), None)

    except Exception as e:
        logger.exception("Logout all failed: %s", e)
        return jsonify({'success': False, 'message': 'Đăng xuất thất bại'}), 500


@auth_bp.route('/get-user', methods=['GET'])
@require_auth
def get_user():
    """Return the token's user"""
    try:
        user_doc = get_collection('users').find_one({'_id': parse_object_id(request.user_info['userId'])})
        if not user_doc:
            return jsonify({'success': False, 'message': 'Không tìm thấy người dùng'}), 404
        return jsonify({
            'success': True,
            'message': 'OK',
            'tokenUser': request.user_info,
            'user': User.from_dict(user_doc).to_public_dict()
        })

    except Exception as e:
        logger.exception("Get user failed: %s", e)
        return jsonify({'success': False, 'message': str(e)}), 500


@auth_bp.route('/forgot-password/send-otp', methods=['POST'])
def forgot_password_send_otp():
    try:
        data = request.get_json(silent=True) or {}
        email = _normalize_email(data)
        if not email:
            return jsonify({'success': False, 'message': 'Email là bắt buộc'}), 400

        user_doc = get_collection('users').find_one({'email': email})
        if not user_doc:
            return jsonify({'success': False, 'message': 'Email không tồn tại trong hệ thống'}), 404

        otp_store = _get_otp_store()
        if otp_store is None:
            return jsonify({'success': False, 'message': 'OTP service not available'}), 503

        remaining = otp_store.cooldown_remaining(PURPOSE_FORGOT, email)
        if remaining:
            return jsonify({'success': False, 'message': f'Vui lòng đợi {remaining} giây trước khi gửi lại OTP',
                            'retryAfter': remaining}), 429

        code = otp_store.issue(PURPOSE_FORGOT, email)
        sent = get_email_service().send_otp(email, code, PURPOSE_FORGOT, user_doc.get('name', ''))
        return jsonify({'success': True, 'message': 'Đã gửi mã OTP tới email của bạn', 'otpSent': sent})

    except Exception as e:
        logger.exception("Forgot password OTP failed: %s", e)
        return jsonify({'success': False, 'message': 'Gửi OTP thất bại'}), 500


@auth_bp.route('/forgot-password/verify-otp', methods=['POST'])
def forgot_password_verify_otp():
    try:
        data = request.get_json(silent=True) or {}
        email = _normalize_email(data)
        otp = str(data.get('otp', '')).strip()
        is_valid, error = validate_otp(otp)
        if not email or not is_valid:
            return jsonify({'success': False, 'message': error or 'Email là bắt buộc'}), 400

        otp_store = _get_otp_store()
        if otp_store is None:
            return jsonify({'success': False, 'message': 'OTP service not available'}), 503

        ok, error = otp_store.verify(PURPOSE_FORGOT, email, otp)
        if not ok:
            return jsonify({'success': False, 'message': error}), 400

        otp_store.mark_verified(email)
        return jsonify({'success': True, 'message': 'Xác thực OTP thành công, vui lòng đặt mật khẩu mới'})

    except Exception as e:
        logger.exception("Forgot password verify failed: %s", e)
        return jsonify({'success': False, 'message': 'Xác thực OTP thất bại'}), 500


@auth_bp.route('/forgot-password/reset', methods=['POST'])
def forgot_password_reset():
    try:
        data = request.get_json(silent=True) or {}
        email = _normalize_email(data)
        new_password = data.get('newPassword') or data.get('password') or ''
        if not email:
            return jsonify({'success': False, 'message': 'Email là bắt buộc'}), 400

        is_valid, errors = validate_password(new_password)
        if not is_valid:
            return jsonify({'success': False, 'message': errors[0], 'errors': errors}), 400

        otp_store = _get_otp_store()
        if otp_store is None:
            return jsonify({'success': False, 'message': 'OTP service not available'}), 503
        if not otp_store.is_verified(email):
            return jsonify({'success': False, 'message': 'Bạn chưa xác thực OTP hoặc phiên đã hết hạn'}), 400

        result = get_collection('users').update_one(
            {'email': email},
            {'$set': {
                'password_hash': User.hash_password(new_password),
                'refresh_tokens': [],
                'updated_at': datetime.now(timezone.utc)
            }}
        )
        if result.matched_count == 0:
            return jsonify({'success': False, 'message': 'Không tìm thấy tài khoản'}), 404

        otp_store.clear_verified(email)
        return jsonify({'success': True, 'message': 'Đặt lại mật khẩu thành công'})

    except Exception as e:
        logger.exception("Reset password failed: %s", e)
        return jsonify({'success': False, 'message': 'Đặt lại mật khẩu thất bại'}), 500


@auth_bp.route('/change-password', methods=['POST'])
@require_auth
def change_password():
    try:
        data = request.get_json(silent=True) or {}
        current_password = data.get('currentPassword', '')
        new_password = data.get('newPassword', '')
        if not current_password or not new_password:
            return jsonify({'success': False, 'message': 'Mật khẩu hiện tại và mật khẩu mới là bắt buộc'}), 400

        users_collection = get_collection('users')
        user_doc = users_collection.find_one({'_id': parse_object_id(request.user_info['userId'])})
        if not user_doc:
            return jsonify({'success': False, 'message': 'Không tìm thấy người dùng'}), 404

        if not User.verify_password(current_password, user_doc.get('password_hash', '')):
            return jsonify({'success': False, 'message': 'Mật khẩu hiện tại không chính xác'}), 400

        is_valid, errors = validate_password(new_password)
        if not is_valid:
            return jsonify({'success': False, 'message': errors[0], 'errors': errors}), 400

        users_collection.update_one(
            {'_id': user_doc['_id']},
            {'$set': {'password_hash': User.hash_password(new_password),
                      'updated_at': datetime.now(timezone.utc)}}
        )
        return jsonify({'success': True, 'message': 'Đổi mật khẩu thành công'})

    except Exception as e:
        logger.exception("Change password failed: %s", e)
        return jsonify({'success': False, 'message': 'Đổi mật khẩu thất bại'}), 500
