# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Endpoints for the caller's notification inbox.
"""

from flask import current_app, g, jsonify
from flask_openapi3 import APIBlueprint, Tag
from pydantic import BaseModel, Field
import logging

from models.requests import PaginationParams
from middleware.auth import require_auth
from services.notifications import NotificationInbox
from utils.serialization import page_to_api

logger = logging.getLogger(__name__)

notifications_tag = Tag(name="Notifications", description="Notification inbox")
notifications_bp = APIBlueprint(
    'notifications', __name__, url_prefix='/api/notifications', abp_tags=[notifications_tag]
)


class NotificationPath(BaseModel):
    notification_id: str = Field(..., description="Notification ID")


def _inbox() -> NotificationInbox:
    return current_app.extensions['inbox']


@notifications_bp.get('')
@require_auth
def list_notifications(query: PaginationParams):
    """
    List the caller's notifications, newest first.

    The page carries the unread count so clients can refresh their badge
    with the same request.
    """
    result, unread = _inbox().list_for_user(g.user_context.user_id, page=query.page, limit=query.limit)
    body = page_to_api(result)
    body["unread_count"] = unread
    return jsonify(body)


@notifications_bp.get('/unread-count')
@require_auth
def unread_count():
    return jsonify({"unread_count": _inbox().unread_count(g.user_context.user_id)})


@notifications_bp.put('/<notification_id>/read')
@require_auth
def mark_read(path: NotificationPath):
    _inbox().mark_read(g.user_context.user_id, path.notification_id)
    return '', 204


@notifications_bp.put('/read-all')
@require_auth
def mark_all_read():
    changed = _inbox().mark_all_read(g.user_context.user_id)
    return jsonify({"updated": changed})
