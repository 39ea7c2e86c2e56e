"""
チケットリンクサービス

リンクは一方向に1行だけ保存し、取得時に向き（outward / inward）を付けて返す。
"""

from dataclasses import dataclass

from sqlalchemy import and_, or_, select
from sqlalchemy.orm import Session as DBSession

from punt.domain import constants
from punt.domain.exceptions import BadRequestError, ConflictError, NotFoundError

from ..database.models import Ticket, TicketLink


@dataclass
class LinkView:
    """チケットから見たリンク"""

    id: str
    link_type: str
    direction: str
    linked_ticket: Ticket


class LinkService:
    def __init__(self, db: DBSession):
        self.db = db

    def list_links(self, ticket: Ticket) -> list[LinkView]:
        links = self.db.scalars(
            select(TicketLink)
            .where(
                or_(
                    TicketLink.from_ticket_id == ticket.id,
                    TicketLink.to_ticket_id == ticket.id,
                )
            )
            .order_by(TicketLink.created_at)
        ).all()

        other_ids = {
            link.to_ticket_id if link.from_ticket_id == ticket.id else link.from_ticket_id
            for link in links
        }
        others = {
            t.id: t
            for t in self.db.scalars(select(Ticket).where(Ticket.id.in_(other_ids))).all()
        }

        views = []
        for link in links:
            if link.from_ticket_id == ticket.id:
                views.append(
                    LinkView(link.id, link.link_type, "outward", others[link.to_ticket_id])
                )
            else:
                views.append(
                    LinkView(link.id, link.link_type, "inward", others[link.from_ticket_id])
                )
        return views

    def create_link(self, ticket: Ticket, link_type: str, target_ticket_id: str) -> LinkView:
        """
        リンクを作成する

        同じリンク、または逆向きの同等リンクが既にある場合はエラー。
        """
        if link_type not in constants.INVERSE_LINK_TYPES:
            raise BadRequestError("Invalid link type")
        if target_ticket_id == ticket.id:
            raise BadRequestError("Cannot link a ticket to itself")

        target = self.db.scalar(
            select(Ticket).where(
                Ticket.id == target_ticket_id, Ticket.project_id == ticket.project_id
            )
        )
        if target is None:
            raise BadRequestError(
                "Target ticket not found or belongs to a different project"
            )

        existing = self.db.scalar(
            select(TicketLink).where(
                or_(
                    and_(
                        TicketLink.from_ticket_id == ticket.id,
                        TicketLink.to_ticket_id == target.id,
                        TicketLink.link_type == link_type,
                    ),
                    and_(
                        TicketLink.from_ticket_id == target.id,
                        TicketLink.to_ticket_id == ticket.id,
                        TicketLink.link_type == constants.INVERSE_LINK_TYPES[link_type],
                    ),
                )
            )
        )
        if existing is not None:
            raise ConflictError("This link already exists")

        link = TicketLink(
            from_ticket_id=ticket.id, to_ticket_id=target.id, link_type=link_type
        )
        self.db.add(link)
        self.db.commit()
        self.db.refresh(link)
        return LinkView(link.id, link.link_type, "outward", target)

    def delete_link(self, ticket: Ticket, link_id: str) -> None:
        link = self.db.scalar(
            select(TicketLink).where(
                TicketLink.id == link_id,
                or_(
                    TicketLink.from_ticket_id == ticket.id,
                    TicketLink.to_ticket_id == ticket.id,
                ),
            )
        )
        if link is None:
            raise NotFoundError("Ticket link not found")
        self.db.delete(link)
        self.db.commit()
