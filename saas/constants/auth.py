"""
Authentication Constants
"""

ALGORITHM = "HS256"
TOKEN_TYPE = "bearer"

ACCESS_TOKEN_COOKIE = "access_token"
REFRESH_TOKEN_COOKIE = "refresh_token"

# Claim keys carried by both token classes
USER_ID_CLAIM = "user_id"
TENANT_ID_CLAIM = "tenant_id"
