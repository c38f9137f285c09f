"""
services/ — business rules.

The domain services are plain classes that receive their collaborators as
constructor arguments. build_services() wires one set of them around a single
SQLAlchemy session so that every service used by a request shares the same
transaction:

    services = build_services(db.session)
    services.registry.create_group(...)
    db.session.commit()

auth_service stays a module of functions; it has no collaborators.
"""

from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy.orm import Session

from studybuddy.app.services.dashboard_service import DashboardService
from studybuddy.app.services.file_service import FileService
from studybuddy.app.services.group_service import GroupRegistry
from studybuddy.app.services.invite_service import InviteCodeAdmission
from studybuddy.app.services.join_request_service import JoinRequestWorkflow
from studybuddy.app.services.membership_service import MembershipLedger
from studybuddy.app.services.session_service import SessionService


@dataclass(frozen=True)
class ServiceContext:
    ledger: MembershipLedger
    invites: InviteCodeAdmission
    join_requests: JoinRequestWorkflow
    registry: GroupRegistry
    sessions: SessionService
    files: FileService
    dashboard: DashboardService


def build_services(session: Session) -> ServiceContext:
    ledger = MembershipLedger(session)
    invites = InviteCodeAdmission(session, ledger)
    join_requests = JoinRequestWorkflow(session, ledger)
    return ServiceContext(
        ledger=ledger,
        invites=invites,
        join_requests=join_requests,
        registry=GroupRegistry(session, ledger, invites, join_requests),
        sessions=SessionService(session, ledger),
        files=FileService(session, ledger),
        dashboard=DashboardService(session, join_requests),
    )
