from __future__ import annotations

from sqlalchemy import Select, and_, event, false, or_
from sqlalchemy.orm import Session, with_loader_criteria

from tenant_rbac.db.base import Base
from tenant_rbac.rbac.scope_filter import AnyScopePredicate, ScopePredicate


def scoped_models() -> list[type]:
    """Mapped classes that declare `__rbac_resource__`."""
    return [
        mapper.class_
        for mapper in Base.registry.mappers
        if getattr(mapper.class_, "__rbac_resource__", None) is not None
    ]


def predicate_criteria(model: type, predicate: ScopePredicate | AnyScopePredicate):
    """
    SQL criteria for one predicate against one resource model.

    Returns None when the predicate leaves the model unrestricted.
    """

    if isinstance(predicate, AnyScopePredicate):
        alternatives = [predicate_criteria(model, p) for p in predicate.predicates]
        if any(c is None for c in alternatives):
            return None
        return or_(*alternatives)
    if predicate.deny_all:
        return false()
    if predicate.unrestricted:
        return None

    clauses = []
    if predicate.owner_user_id is not None:
        owner_column = getattr(model, model.__rbac_owner_column__)
        clauses.append(owner_column == predicate.owner_user_id)
    if predicate.organization_ids is not None:
        if not predicate.organization_ids:
            return false()
        org_column = getattr(model, model.__rbac_organization_column__)
        clauses.append(org_column.in_(sorted(predicate.organization_ids)))
    return and_(*clauses)


def scope_statement(stmt: Select, model: type, predicate: ScopePredicate | AnyScopePredicate | None) -> Select:
    """Explicit variant of the session filter, for code that runs without a request."""
    if predicate is None:
        return stmt
    criteria = predicate_criteria(model, predicate)
    return stmt if criteria is None else stmt.where(criteria)


def session_authz(session: Session):
    """
    Authorization state for a session, resolved at execute time.

    `get_db` records the request on `Session.info["request"]`; the session
    may be opened before the global security dependency has run, so the
    request's `state.authz` is looked up per statement rather than copied once.
    """

    authz = session.info.get("authz")
    if authz is None:
        request = session.info.get("request")
        authz = getattr(getattr(request, "state", None), "authz", None)
    return authz


@event.listens_for(Session, "do_orm_execute")
def _apply_authorization_filters(execute_state) -> None:
    """
    Transparent data scoping.

    This keeps resource query code unchanged:
        db.scalars(select(Dashboard)).all()
    still returns only the rows the caller's granted scope covers.
    """

    if not execute_state.is_select:
        return

    authz = session_authz(execute_state.session)
    if authz is None:
        return

    options = []
    for model in scoped_models():
        predicate = authz.predicate_for(model.__rbac_resource__)
        if predicate is None:
            continue
        criteria = predicate_criteria(model, predicate)
        if criteria is None:
            continue
        options.append(with_loader_criteria(model, criteria, include_aliases=True))

    if options:
        execute_state.statement = execute_state.statement.options(*options)
