from fastapi import APIRouter

from punt.presentation.api.v1 import (
    admin,
    attachments,
    auth,
    columns,
    comments,
    labels,
    links,
    me,
    members,
    projects,
    roles,
    sprints,
    tickets,
    users,
)

PROJECT = "/projects/{project_id}"
TICKET = PROJECT + "/tickets/{ticket_id}"

router = APIRouter()
router.include_router(auth.router, prefix="/auth", tags=["auth"])
router.include_router(me.router, prefix="/me", tags=["me"])
router.include_router(users.router, prefix="/users", tags=["users"])
router.include_router(projects.router, prefix="/projects", tags=["projects"])
router.include_router(columns.router, prefix=PROJECT + "/columns", tags=["columns"])
router.include_router(labels.router, prefix=PROJECT + "/labels", tags=["labels"])
router.include_router(members.router, prefix=PROJECT + "/members", tags=["members"])
router.include_router(roles.router, prefix=PROJECT + "/roles", tags=["roles"])
router.include_router(sprints.router, prefix=PROJECT + "/sprints", tags=["sprints"])
router.include_router(tickets.router, prefix=PROJECT + "/tickets", tags=["tickets"])
router.include_router(comments.router, prefix=TICKET + "/comments", tags=["comments"])
router.include_router(links.router, prefix=TICKET + "/links", tags=["links"])
router.include_router(
    attachments.router, prefix=TICKET + "/attachments", tags=["attachments"]
)
router.include_router(admin.router, prefix="/admin", tags=["admin"])
