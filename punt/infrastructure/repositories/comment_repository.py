"""チケットコメントサービス"""

from sqlalchemy import select
from sqlalchemy.orm import Session as DBSession

from punt.domain import permissions as perms
from punt.domain.exceptions import BadRequestError, ForbiddenError, NotFoundError

from ..database.models import Comment, Ticket, User
from .permission_repository import PermissionService


class CommentService:
    """
    コメントの作成・編集・削除

    他人のコメントの編集・削除には comments.manage_any が必要。
    """

    def __init__(self, db: DBSession):
        self.db = db
        self.permissions = PermissionService(db)

    def list_comments(self, ticket_id: str) -> list[Comment]:
        return list(
            self.db.scalars(
                select(Comment)
                .where(Comment.ticket_id == ticket_id)
                .order_by(Comment.created_at)
            ).all()
        )

    def get_comment(self, ticket_id: str, comment_id: str) -> Comment:
        comment = self.db.scalar(
            select(Comment).where(Comment.id == comment_id, Comment.ticket_id == ticket_id)
        )
        if comment is None:
            raise NotFoundError("Comment not found")
        return comment

    def _require_content(self, content: str) -> str:
        if not content.strip():
            raise BadRequestError("Comment content is required")
        return content

    def _require_owner_or_manager(
        self, actor: User, ticket: Ticket, comment: Comment, action: str
    ) -> None:
        if comment.author_id == actor.id:
            return
        if self.permissions.has_permission(
            actor, ticket.project_id, perms.COMMENTS_MANAGE_ANY
        ):
            return
        raise ForbiddenError(f"You can only {action} your own comments")

    def create_comment(self, actor: User, ticket: Ticket, content: str) -> Comment:
        comment = Comment(
            ticket_id=ticket.id,
            author_id=actor.id,
            content=self._require_content(content),
        )
        self.db.add(comment)
        self.db.commit()
        self.db.refresh(comment)
        return comment

    def update_comment(
        self, actor: User, ticket: Ticket, comment: Comment, content: str
    ) -> Comment:
        self._require_owner_or_manager(actor, ticket, comment, "edit")
        comment.content = self._require_content(content)
        self.db.commit()
        self.db.refresh(comment)
        return comment

    def delete_comment(self, actor: User, ticket: Ticket, comment: Comment) -> None:
        self._require_owner_or_manager(actor, ticket, comment, "delete")
        self.db.delete(comment)
        self.db.commit()
