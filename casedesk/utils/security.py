from typing import Dict, Optional
from jose import jwt, JWTError
from config.config import Config


def verify_token(token: str) -> Optional[Dict]:
    """Verify a backend-issued JWT and return its claims, or None"""
    if not token:
        return None
    try:
        claims = jwt.decode(token, Config.JWT_SECRET_KEY, algorithms=[Config.JWT_ALGORITHM])
    except JWTError:
        return None
    # Some tokens nest the identity under a "user" claim
    user = claims.get('user')
    if isinstance(user, dict):
        merged = dict(user)
        merged.setdefault('exp', claims.get('exp'))
        merged.setdefault('sub', claims.get('sub'))
        return merged
    return claims


def user_id_from_claims(claims: Dict) -> Optional[str]:
    for key in ('id', '_id', 'sub'):
        if claims.get(key):
            return str(claims[key])
    return None
