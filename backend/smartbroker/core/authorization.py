# smartbroker/core/authorization.py
"""Decisões de acesso multi-tenant.

``authorize`` é uma função pura: recebe quem age, o que pretende fazer e a
referência do recurso alvo, e devolve uma ``Decision``. Quem chama é
responsável por ler o recurso antes e persistir a mutação depois.

Ordem de avaliação:

1. ``admin`` sempre pode.
2. Ações globais (remover agência, transferir propriedade, administrar) só admin.
3. Gerenciar a agência (editar, membros) só o dono, comparando a referência.
4. Leitura do próprio perfil, quando a operação permite.
5. Sem agência vinculada, nega.
6. Agência do recurso diferente da do ator, nega.
7. Restrição por papel (manager, agent, viewer).
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional

from bson import ObjectId

from smartbroker.core.exceptions import ForbiddenError


class Role(str, Enum):
    ADMIN = "admin"
    MANAGER = "manager"
    AGENT = "agent"
    VIEWER = "viewer"


class Action(str, Enum):
    CREATE = "create"
    READ = "read"
    UPDATE = "update"
    DELETE = "delete"
    EXECUTE = "execute"
    MANAGE_TENANT = "manage_tenant"
    DELETE_TENANT = "delete_tenant"
    TRANSFER_OWNERSHIP = "transfer_ownership"
    ADMINISTER = "administer"


ADMIN_ONLY_ACTIONS = frozenset({Action.DELETE_TENANT, Action.TRANSFER_OWNERSHIP, Action.ADMINISTER})

NO_TENANT = "User is not associated with any agency"
CROSS_TENANT = "Cross-tenant access is not allowed"
ADMIN_REQUIRED = "Administrator privileges required"
OWNER_REQUIRED = "Only the agency owner or an administrator can manage this agency"
AGENT_NOT_OWNER = "Agents can only access records assigned to or created by them"
VIEWER_READ_ONLY = "Viewers have read-only access"


@dataclass(frozen=True)
class Actor:
    user_id: ObjectId
    role: Role
    agency_id: Optional[ObjectId] = None
    email: Optional[str] = None

    @property
    def is_admin(self) -> bool:
        return self.role is Role.ADMIN


@dataclass(frozen=True)
class ResourceRef:
    """O que o motor precisa saber do recurso alvo."""

    agency_id: Optional[ObjectId]
    # Responsável (assignedTo) ou, na falta, criador
    owner_id: Optional[ObjectId] = None
    # Para leituras de perfil: o usuário que o recurso representa
    subject_id: Optional[ObjectId] = None
    # Dono da agência, para ações de gestão da própria agência
    tenant_owner_id: Optional[ObjectId] = None


@dataclass(frozen=True)
class Decision:
    allowed: bool
    reason: Optional[str] = None

    def __bool__(self) -> bool:
        return self.allowed


ALLOW = Decision(True)


def deny(reason: str) -> Decision:
    return Decision(False, reason)


def _narrow_by_role(actor: Actor, action: Action, resource: ResourceRef) -> Decision:
    role = actor.role
    if role is Role.MANAGER:
        return ALLOW
    if role is Role.AGENT:
        if action is Action.CREATE:
            return ALLOW
        if resource.owner_id is None and action in (Action.READ, Action.EXECUTE):
            return ALLOW
        if resource.owner_id is not None and resource.owner_id == actor.user_id:
            return ALLOW
        return deny(AGENT_NOT_OWNER)
    if role is Role.VIEWER:
        return ALLOW if action is Action.READ else deny(VIEWER_READ_ONLY)
    if role is Role.ADMIN:
        return ALLOW
    raise ValueError(f"Unhandled role: {role!r}")


def authorize(
    actor: Actor,
    action: Action,
    resource: ResourceRef,
    allow_self_read: bool = False,
) -> Decision:
    if actor.role is Role.ADMIN:
        return ALLOW

    if action in ADMIN_ONLY_ACTIONS:
        return deny(ADMIN_REQUIRED)

    if action is Action.MANAGE_TENANT:
        if resource.tenant_owner_id is not None and resource.tenant_owner_id == actor.user_id:
            return ALLOW
        return deny(OWNER_REQUIRED)

    if allow_self_read and action is Action.READ and resource.subject_id == actor.user_id:
        return ALLOW

    if actor.agency_id is None:
        return deny(NO_TENANT)

    if resource.agency_id != actor.agency_id:
        return deny(CROSS_TENANT)

    return _narrow_by_role(actor, action, resource)


def ensure_allowed(
    actor: Actor,
    action: Action,
    resource: ResourceRef,
    allow_self_read: bool = False,
) -> None:
    """Como ``authorize``, mas levanta ForbiddenError com o motivo da negação."""
    decision = authorize(actor, action, resource, allow_self_read=allow_self_read)
    if not decision:
        raise ForbiddenError(decision.reason or "Operation not permitted")


def require_role(actor: Actor, *roles: Role) -> None:
    """Restrição adicional por papel em operações específicas (admin sempre passa)."""
    if actor.is_admin or actor.role in roles:
        return
    allowed = ", ".join(r.value for r in (Role.ADMIN, *roles))
    raise ForbiddenError(f"This operation requires one of the roles: {allowed}")


def scoped_query(
    actor: Actor,
    query: Optional[Dict[str, Any]] = None,
    agency_id: Optional[ObjectId] = None,
    assignee_field: Optional[str] = None,
    creator_field: str = "created_by",
    owner_scoped: bool = True,
) -> Dict[str, Any]:
    """Pré-filtro de listagem conforme o ator.

    Não-admins ficam restritos à própria agência; agents, aos registros que
    lhes foram atribuídos (ou que criaram, quando não há responsável),
    exceto em recursos da agência como um todo (``owner_scoped=False``).
    """
    scoped: Dict[str, Any] = dict(query or {})
    if actor.is_admin:
        if agency_id is not None:
            scoped["agency_id"] = agency_id
        return scoped

    if actor.agency_id is None:
        raise ForbiddenError(NO_TENANT)
    if agency_id is not None and agency_id != actor.agency_id:
        raise ForbiddenError(CROSS_TENANT)
    scoped["agency_id"] = actor.agency_id

    if owner_scoped and actor.role is Role.AGENT:
        if assignee_field:
            ownership = {"$or": [
                {assignee_field: actor.user_id},
                {assignee_field: None, creator_field: actor.user_id},
            ]}
        else:
            ownership = {creator_field: actor.user_id}
        scoped = {"$and": [scoped, ownership]}
    return scoped
