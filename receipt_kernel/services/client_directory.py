"""
SqlClientDirectory -- read-only member lookup by document number.

Responsibility:
    Resolves a DNI to the active primary holder registered under it and
    returns an immutable MemberInfo.  Also lists members for operator
    search screens.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.
    Consumed by IssuanceOrchestrator through the ClientDirectory protocol.

Invariants enforced:
    - Read-only: never creates or mutates Member rows.
    - Inactive members and dependants are never returned; a receipt can
      only be issued to an active primary holder.

Failure modes:
    - DirectoryUnavailableError: the database could not be queried after
      bounded retries.  Distinct from "not found" (which returns None).
"""

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from receipt_kernel.domain.dtos import MemberInfo
from receipt_kernel.exceptions import DirectoryUnavailableError
from receipt_kernel.logging_config import get_logger
from receipt_kernel.models.member import Member
from receipt_kernel.services.base import BaseStoreService

logger = get_logger("services.directory")


def _to_info(member: Member) -> MemberInfo:
    return MemberInfo(
        id=member.id,
        document_number=member.document_number,
        legal_name=member.legal_name,
    )


class SqlClientDirectory(BaseStoreService):
    """Member directory backed by the ``members`` table."""

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        max_attempts: int = 3,
        backoff_seconds: float = 0.05,
    ):
        super().__init__(session_factory, max_attempts, backoff_seconds)

    def lookup(self, document_number: str) -> MemberInfo | None:
        """
        Find the active primary holder for ``document_number``.

        Returns:
            MemberInfo, or None when no eligible member exists.

        Raises:
            DirectoryUnavailableError: If the directory cannot be queried.
        """

        def _query() -> MemberInfo | None:
            with self._session_factory() as session:
                member = session.execute(
                    select(Member).where(
                        Member.document_number == document_number,
                        Member.is_primary_holder.is_(True),
                        Member.is_active.is_(True),
                    )
                ).scalar_one_or_none()
                return _to_info(member) if member is not None else None

        try:
            result = self._retrying("directory.lookup", _query, logger)
        except SQLAlchemyError as exc:
            logger.error(
                "directory_lookup_failed",
                extra={"document_number": document_number, "error": type(exc).__name__},
            )
            raise DirectoryUnavailableError(document_number, type(exc).__name__) from exc

        logger.debug(
            "directory_lookup",
            extra={"document_number": document_number, "found": result is not None},
        )
        return result

    def search(self, name_fragment: str, limit: int = 20) -> list[MemberInfo]:
        """Active primary holders whose legal name contains ``name_fragment``."""

        def _query() -> list[MemberInfo]:
            with self._session_factory() as session:
                rows = session.execute(
                    select(Member)
                    .where(
                        Member.legal_name.ilike(f"%{name_fragment}%"),
                        Member.is_primary_holder.is_(True),
                        Member.is_active.is_(True),
                    )
                    .order_by(Member.legal_name)
                    .limit(limit)
                ).scalars().all()
                return [_to_info(m) for m in rows]

        try:
            return self._retrying("directory.search", _query, logger)
        except SQLAlchemyError as exc:
            raise DirectoryUnavailableError(name_fragment, type(exc).__name__) from exc

    def register(
        self,
        document_number: str,
        legal_name: str,
        is_primary_holder: bool = True,
    ) -> MemberInfo:
        """
        Add a member row.

        Used by database seeding and tests; the issuance workflow never
        registers members.
        """
        with self._session_factory() as session, session.begin():
            member = Member(
                document_number=document_number,
                legal_name=legal_name,
                is_primary_holder=is_primary_holder,
                is_active=True,
            )
            session.add(member)
            session.flush()
            info = _to_info(member)
        logger.info(
            "member_registered",
            extra={"document_number": document_number, "member_id": str(info.id)},
        )
        return info
