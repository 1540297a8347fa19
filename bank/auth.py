from fastapi import Header, HTTPException
from jose import JWTError, jwt

from bank.config import get_settings


def verify_token(authorization: str = Header(...)):
    secret = get_settings().jwt_secret
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token or not secret:
        raise HTTPException(status_code=401, detail="Invalid or missing token")
    try:
        return jwt.decode(token, secret, algorithms=["HS256"])
    except JWTError:
        raise HTTPException(status_code=401, detail="Invalid or missing token")
