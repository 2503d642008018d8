from typing import Optional

from fastapi import Cookie, Header

from app.identity import Actor, parse_actor


def get_actor(
    x_user_id: Optional[str] = Header(None),
    x_user_role: Optional[str] = Header(None),
) -> Optional[Actor]:
    # identity is resolved upstream and forwarded as headers
    return parse_actor(x_user_id, x_user_role)


def get_cart_token(cart_uuid: Optional[str] = Cookie(None)) -> Optional[str]:
    return cart_uuid
