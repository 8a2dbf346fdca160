"""
``auth`` module: JWT settings, login strategies, roles and the users entity.

Secrets (``jwt.secret``, OAuth ``client_secret``) are marked with
``secret_field`` and never reach the stored configuration tree.

Rules enforced in ``on_before_update``:
    - enabling auth without a JWT secret generates one
    - ``entity_name`` cannot change while auth stays enabled
    - ``default_role`` must name a configured role
"""

from __future__ import annotations

from secrets import token_urlsafe
from typing import Annotated, Any, Literal

from fastapi import APIRouter
from pydantic import BaseModel, ConfigDict, Field

from keel.auth.guard import Role
from keel.core.errors import ValidationVetoError
from keel.core.logging import get_logger
from keel.core.secrets import secret_field
from keel.data.entities import Entity, EntityType, FieldType
from keel.data.entities import Field as EntityField
from keel.modules.base import BuildContext, BuildResult, Module, ModuleKey

log = get_logger(__name__)

AUTH_PERMISSIONS = ["auth.users.read", "auth.users.write", "auth.roles.manage"]


class JwtConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    secret: str = secret_field(description="Signing secret; generated when auth is enabled without one")
    alg: Literal["HS256", "HS384", "HS512"] = "HS256"
    expires: int | None = Field(default=None, description="Token lifetime in seconds")
    issuer: str | None = None
    fields: list[str] = Field(default_factory=lambda: ["id", "email", "role"])


class PasswordConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    hashing: Literal["plain", "sha256"] = "sha256"


class OAuthClientConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    client_id: str = ""
    client_secret: str = secret_field()


class OAuthConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str = "github"
    client: OAuthClientConfig = Field(default_factory=OAuthClientConfig)


class PasswordStrategy(BaseModel):
    model_config = ConfigDict(extra="forbid", title="password")

    type: Literal["password"] = "password"
    enabled: bool = True
    config: PasswordConfig = Field(default_factory=PasswordConfig)


class OAuthStrategy(BaseModel):
    model_config = ConfigDict(extra="forbid", title="oauth")

    type: Literal["oauth"] = "oauth"
    enabled: bool = True
    config: OAuthConfig = Field(default_factory=OAuthConfig)


Strategy = Annotated[PasswordStrategy | OAuthStrategy, Field(discriminator="type")]


class RoleConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    permissions: list[str] = Field(default_factory=list)
    is_default: bool = False
    implicit_allow: bool = False


class AuthConfig(BaseModel):
    model_config = ConfigDict(extra="forbid", title="Authentication")

    enabled: bool = False
    basepath: str = "/api/auth"
    entity_name: str = "users"
    allow_register: bool = True
    jwt: JwtConfig = Field(default_factory=JwtConfig)
    strategies: dict[str, Strategy] = Field(default_factory=lambda: {"password": PasswordStrategy()})
    roles: dict[str, RoleConfig] = Field(default_factory=dict)
    default_role: str | None = None


def users_entity(name: str) -> Entity:
    return Entity(
        name,
        [
            EntityField("email", FieldType.TEXT, required=True),
            EntityField("strategy", FieldType.ENUM),
            EntityField("strategy_value", FieldType.TEXT),
            EntityField("role", FieldType.ENUM),
        ],
        type=EntityType.SYSTEM,
    )


class AuthModule(Module):
    key = ModuleKey.AUTH

    @classmethod
    def get_schema(cls) -> type[BaseModel]:
        return AuthConfig

    @property
    def enabled(self) -> bool:
        return bool(self.config.get("enabled"))

    async def on_before_update(self, current: dict[str, Any], proposed: dict[str, Any]) -> dict[str, Any]:
        if current.get("enabled") and proposed.get("enabled"):
            if current.get("entity_name") != proposed.get("entity_name"):
                raise ValidationVetoError(
                    "Cannot change entity_name while auth is enabled"
                ).with_context(module=self.key.value, path="entity_name")

        default_role = proposed.get("default_role")
        if default_role is not None and default_role not in proposed.get("roles", {}):
            raise ValidationVetoError(
                f"Default role {default_role!r} is not a configured role"
            ).with_context(module=self.key.value, path="default_role")

        if proposed.get("enabled") and not proposed["jwt"].get("secret"):
            log.warning("auth.jwt_secret_generated")
            proposed["jwt"]["secret"] = token_urlsafe(48)

        return proposed

    def _register_roles(self, ctx: BuildContext, config: AuthConfig) -> None:
        for name, role in config.roles.items():
            ctx.guard.set_role(
                Role(
                    name,
                    set(role.permissions),
                    is_default=role.is_default or name == config.default_role,
                    implicit_allow=role.implicit_allow,
                )
            )

    def _register_entities(self, ctx: BuildContext, config: AuthConfig) -> BuildResult:
        result = ctx.helper.ensure_entity(users_entity(config.entity_name))
        users = ctx.em.entity(config.entity_name)

        # an empty option list keeps the previous field and is only logged
        for field_name, options in (("role", list(config.roles)), ("strategy", list(config.strategies))):
            users.replace_field_enum(field_name, options).inspect_err(
                lambda e, field_name=field_name: log.info(
                    "auth.enum_not_replaced", field=field_name, reason=e.message
                )
            )
        return result

    async def build(self, ctx: BuildContext) -> BuildResult:
        config = AuthConfig.model_validate(self.config)
        if not config.enabled:
            return BuildResult()

        self._register_roles(ctx, config)
        ctx.helper.ensure_permissions(AUTH_PERMISSIONS)
        result = self._register_entities(ctx, config)

        router = APIRouter(tags=["auth"])

        @router.get("/strategies")
        async def strategies() -> dict[str, Any]:
            return {
                "strategies": [n for n, s in config.strategies.items() if s.enabled],
                "allow_register": config.allow_register,
            }

        ctx.server.include_router(router, prefix=config.basepath)
        return result
