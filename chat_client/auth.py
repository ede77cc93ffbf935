"""Sign-in / sign-up against Supabase Auth, the way the web frontend does it."""
from dataclasses import dataclass
from typing import Optional

from supabase import AuthError, Client, create_client

UNCONFIRMED_EMAIL = "Please confirm your email before logging in."
SIGNUP_SUCCESS = "Sign-up successful! Please check your email to verify your account."


class SignInError(Exception):
    pass


@dataclass(frozen=True)
class SignedInUser:
    id: str
    email: Optional[str]
    access_token: str


def make_client(url: str, anon_key: str) -> Client:
    return create_client(url, anon_key)


def sign_up(client: Client, email: str, password: str) -> str:
    """Register; the user must confirm the email before signing in."""
    try:
        client.auth.sign_up({"email": email, "password": password})
    except AuthError as e:
        raise SignInError(str(e)) from e
    return SIGNUP_SUCCESS


def sign_in(client: Client, email: str, password: str) -> SignedInUser:
    try:
        resp = client.auth.sign_in_with_password({"email": email, "password": password})
    except AuthError as e:
        raise SignInError(str(e)) from e

    user = getattr(resp, "user", None)
    session = getattr(resp, "session", None)
    if user is None or session is None:
        raise SignInError("Sign-in failed.")

    if not getattr(user, "email_confirmed_at", None):
        raise SignInError(UNCONFIRMED_EMAIL)

    return SignedInUser(id=str(user.id), email=getattr(user, "email", None), access_token=session.access_token)
