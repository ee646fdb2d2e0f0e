"""
JWT configuration settings.

Tokens are issued by the authentication service. This process verifies them
to learn which payroll class a request works on, and re-issues them when a
user switches payroll class.
"""

from pydantic import BaseModel, Field


class JWTConfig(BaseModel):
    """JWT configuration settings."""

    SECRET_KEY: str = Field(
        default="your-secret-key-change-this-in-production",
        description="Secret key for JWT token signing and decoding",
    )
    ALGORITHM: str = Field(
        default="HS256", description="Algorithm used for JWT token encoding"
    )
    ACCESS_TOKEN_EXPIRE_MINUTES: int = Field(
        default=360,
        gt=0,
        description="Lifetime of tokens issued on a payroll class switch",
    )
    TOKEN_TYPE: str = Field(
        default="Bearer", description="Token type for authorization header"
    )
