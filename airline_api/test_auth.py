"""
認証（パスワードハッシュ・JWT）のテスト
"""
from datetime import datetime, timedelta, timezone

import pytest
from jose import jwt

import auth
from auth import (
    create_token,
    hash_password,
    parse_expiration,
    verify_password,
    verify_token,
)
from errors import AuthError, InternalError
from models import UserRole


def _encode(claims, secret='test-secret'):
    return jwt.encode(claims, secret, algorithm='HS256')


def _future():
    return int((datetime.now(timezone.utc) + timedelta(hours=1)).timestamp())


# ═══════════════════════════════════════
# 1. パスワード
# ═══════════════════════════════════════
def test_hash_and_verify():
    """ハッシュは平文と異なり、正しいパスワードでのみ一致する"""
    hashed = hash_password('s3cret!')
    assert hashed != 's3cret!'
    assert hashed.startswith('$2')
    assert verify_password('s3cret!', hashed)
    assert not verify_password('wrong', hashed)

def test_verify_without_hash():
    """パスワード未設定のユーザーは常に不一致"""
    assert not verify_password('anything', None)
    assert not verify_password('anything', '')

def test_verify_malformed_hash():
    assert not verify_password('anything', 'not-a-bcrypt-hash')


# ═══════════════════════════════════════
# 2. 有効期間
# ═══════════════════════════════════════
@pytest.mark.parametrize('text, expected', [
    ('30d', timedelta(days=30)),
    ('24h', timedelta(hours=24)),
    ('15m', timedelta(minutes=15)),
    ('3600s', timedelta(seconds=3600)),
])
def test_parse_expiration(text, expected):
    assert parse_expiration(text) == expected

@pytest.mark.parametrize('text', ['', 'forever', 'd', '10w'])
def test_parse_expiration_fallback(text):
    """解釈できない値は30日"""
    assert parse_expiration(text) == timedelta(days=30)


# ═══════════════════════════════════════
# 3. トークン
# ═══════════════════════════════════════
def test_token_round_trip():
    token = create_token(42, UserRole.WORKER)
    user = verify_token(token)
    assert user.user_id == 42
    assert user.role is UserRole.WORKER

def test_token_claims():
    """sub はユーザーIDの文字列、有効期限は設定どおり"""
    token = create_token(7, 'admin')
    claims = jwt.get_unverified_claims(token)
    assert claims['sub'] == '7'
    assert claims['role'] == 'admin'
    assert abs(claims['exp'] - claims['iat'] - 30 * 24 * 3600) <= 1

def test_token_expired():
    past = int((datetime.now(timezone.utc) - timedelta(minutes=5)).timestamp())
    token = _encode({'sub': '1', 'role': 'user', 'exp': past})
    with pytest.raises(AuthError, match='Token expired'):
        verify_token(token)

def test_token_wrong_secret():
    token = _encode({'sub': '1', 'role': 'user', 'exp': _future()}, secret='other-secret')
    with pytest.raises(AuthError, match='Invalid token'):
        verify_token(token)

def test_token_garbage():
    with pytest.raises(AuthError, match='Invalid token'):
        verify_token('not.a.jwt')

@pytest.mark.parametrize('sub', ['abc', '0', str(2**31)])
def test_token_invalid_subject(sub):
    """数値でない、またはINTEGER列の範囲外のユーザーID"""
    token = _encode({'sub': sub, 'role': 'user', 'exp': _future()})
    with pytest.raises(AuthError, match='Invalid user ID in token'):
        verify_token(token)

def test_token_invalid_role():
    token = _encode({'sub': '1', 'role': 'pilot', 'exp': _future()})
    with pytest.raises(AuthError, match='Invalid role in token'):
        verify_token(token)

def test_missing_secret(monkeypatch):
    """シークレット未設定ではトークンを発行しない"""
    monkeypatch.setattr(auth, 'JWT_SECRET', '')
    with pytest.raises(InternalError):
        create_token(1, UserRole.USER)
