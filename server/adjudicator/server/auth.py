# adjudicator/server/auth.py
import aiohttp
import json
import os
from aiohttp import web
from jose import jwt
from jose.exceptions import ExpiredSignatureError, JWTClaimsError, JWTError
import logging
import re
from adjudicator.database.database import async_session, get_items_by_filters, create_item
import adjudicator.database.models as db_models


logger = logging.getLogger(__name__)

AUTH0_DOMAIN = os.environ.get("AUTH0_DOMAIN")
API_AUDIENCE = os.environ.get("AUTH0_API_AUDIENCE")
ALGORITHMS = ["RS256"]

PUBLIC_PATHS = [
    re.compile(r"^/api/docs(/.*)?$"),
    re.compile(r"^/static(/.*)?$"),
]

jwks_cache = None


async def get_jwks():
    global jwks_cache
    if jwks_cache:
        return jwks_cache

    if not AUTH0_DOMAIN:
        logger.error("AUTH0_DOMAIN not set for JWKS fetching.")
        raise web.HTTPInternalServerError(
            text=json.dumps({"error": "Auth configuration error (domain)."}),
            content_type="application/json",
        )

    jwks_url = f"https://{AUTH0_DOMAIN}/.well-known/jwks.json"
    try:
        async with aiohttp.ClientSession() as session:
            async with session.get(jwks_url) as resp:
                resp.raise_for_status()
                jwks_cache = await resp.json()
                logger.info("JWKS fetched and cached successfully.")
                return jwks_cache
    except aiohttp.ClientError as e:
        logger.error(f"Failed to fetch JWKS: {e}")
        raise web.HTTPInternalServerError(
            text=json.dumps({"error": f"Could not fetch JWKS: {e}"}),
            content_type="application/json",
        )


class AuthError(Exception):
    def __init__(self, error, status_code):
        self.error = error
        self.status_code = status_code


def find_signing_key(jwks: dict, kid: str) -> dict:
    for key in jwks.get("keys", []):
        if key.get("kid") == kid:
            return {name: key[name] for name in ("kty", "kid", "use", "n", "e")}
    return {}


async def verify_jwt(token: str) -> dict:
    if not AUTH0_DOMAIN or not API_AUDIENCE:
        logger.error("Auth0 domain or API audience not configured on backend.")
        raise AuthError(
            {
                "code": "config_error",
                "description": "Authentication service not configured.",
            },
            500,
        )

    jwks = await get_jwks()
    try:
        unverified_header = jwt.get_unverified_header(token)
    except JWTError as e:
        logger.warning(f"JWT Error (unverified header): {e}")
        raise AuthError(
            {
                "code": "invalid_header",
                "description": "Unable to parse authentication token.",
            },
            401,
        )

    rsa_key = find_signing_key(jwks, unverified_header.get("kid"))
    if not rsa_key:
        logger.warning("RSA key not found in JWKS for the given KID.")
        raise AuthError(
            {"code": "invalid_header", "description": "Unable to find appropriate key"},
            401,
        )

    try:
        return jwt.decode(
            token,
            rsa_key,
            algorithms=ALGORITHMS,
            audience=API_AUDIENCE,
            issuer=f"https://{AUTH0_DOMAIN}/",
        )
    except ExpiredSignatureError:
        logger.warning("Token is expired.")
        raise AuthError(
            {"code": "token_expired", "description": "Token is expired."}, 401
        )
    except JWTClaimsError as e:
        logger.warning(f"Invalid token claims: {e}")
        raise AuthError(
            {"code": "invalid_claims", "description": "Incorrect audience or issuer."},
            401,
        )
    except JWTError as e:
        logger.error(f"Error decoding token: {type(e).__name__} - {e}")
        raise AuthError(
            {
                "code": "invalid_token",
                "description": "Unable to validate authentication token.",
            },
            401,
        )


async def get_or_create_user(payload: dict):
    auth_id = payload["sub"]
    async with async_session() as session:
        users: list[db_models.User] = await get_items_by_filters(
            session, db_models.User, auth_id=auth_id
        )
        if users:
            return users[0]
        username = payload.get("nickname") or payload.get("name") or auth_id
        return await create_item(
            session, {"auth_id": auth_id, "username": username}, db_models.User
        )


@web.middleware
async def auth_middleware(request: web.Request, handler):
    # Allow OPTIONS requests to pass through for CORS preflight
    if request.method in ("OPTIONS", "HEAD"):
        return await handler(request)

    for pattern in PUBLIC_PATHS:
        if pattern.match(request.path):
            logger.debug(f"Public path, skipping auth: {request.path}")
            return await handler(request)

    auth_header = request.headers.get("Authorization")
    if not auth_header:
        logger.warning(f"Authorization header missing for {request.path}")
        return web.json_response(
            {
                "code": "authorization_header_missing",
                "description": "Authorization header is expected.",
            },
            status=401,
        )

    parts = auth_header.split()
    if len(parts) != 2 or parts[0].lower() != "bearer":
        logger.warning(f"Invalid Authorization header format for {request.path}")
        return web.json_response(
            {
                "code": "invalid_header",
                "description": "Authorization header must be 'Bearer token'.",
            },
            status=401,
        )

    try:
        payload = await verify_jwt(parts[1])
    except AuthError as e:
        logger.warning(
            f"AuthError for {request.path}: Code: {e.error.get('code')}, Desc: {e.error.get('description')}"
        )
        return web.json_response(e.error, status=e.status_code)
    except web.HTTPException as e_http:
        logger.error(f"HTTPException during auth for {request.path}: {e_http.reason}")
        return e_http

    if not payload.get("sub"):
        logger.warning(f"Token payload missing 'sub' for {request.path}")
        return web.json_response(
            {"code": "invalid_token", "description": "Token payload is missing 'sub'."},
            status=401,
        )

    user = await get_or_create_user(payload)
    if not user:
        logger.error(f"Failed to create user for {payload['sub']} in {request.path}")
        return web.json_response(
            {"code": "internal_error", "description": "Failed to create user."},
            status=500,
        )

    request["user"] = payload
    request["user_id"] = user.id
    logger.info(f"User {payload['sub']} authenticated for {request.path}")
    return await handler(request)
