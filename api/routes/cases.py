# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Case endpoints.

Reporting, listing and nearby search, reporter edits, volunteer acceptance
and progress, timeline updates and comments. Handlers are thin: they parse
the request, call the lifecycle coordinator and serialize the result.
"""

from flask import current_app, g, jsonify
from flask_openapi3 import APIBlueprint, Tag
from pydantic import BaseModel, Field
from opentelemetry import trace
import logging

from models.requests import (
    AcceptCaseRequest,
    CaseListQuery,
    CaseUpdateRequest,
    CommentRequest,
    CreateCaseRequest,
    NearbyCasesQuery,
    PaginationParams,
    UpdateCaseRequest,
    UpdateVolunteerStatusRequest,
)
from middleware.auth import current_user_id, optional_auth, require_auth
from middleware.rate_limit import rate_limit
from services.coordinator import CaseLifecycleCoordinator
from utils.serialization import nearby_to_api, page_to_api, to_api, to_api_list

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

cases_tag = Tag(name="Cases", description="Rescue case lifecycle")
cases_bp = APIBlueprint('cases', __name__, url_prefix='/api/cases', abp_tags=[cases_tag])

comments_tag = Tag(name="Comments", description="Case discussion")
comments_bp = APIBlueprint('comments', __name__, url_prefix='/api/comments', abp_tags=[comments_tag])


class CasePath(BaseModel):
    case_id: str = Field(..., description="Case ID")


class CommentPath(BaseModel):
    comment_id: str = Field(..., description="Comment ID")


def _coordinator() -> CaseLifecycleCoordinator:
    return current_app.extensions['coordinator']


@cases_bp.post('')
@optional_auth
@rate_limit('create_case')
def create_case(body: CreateCaseRequest):
    """Report a new case. Anonymous callers are accepted."""
    case = _coordinator().create_case(body, reporter_id=current_user_id())
    return jsonify(to_api(case)), 201


@cases_bp.get('')
def list_cases(query: CaseListQuery):
    """List cases with optional search and filters, newest first."""
    return jsonify(page_to_api(_coordinator().list_cases(query)))


@cases_bp.get('/nearby')
def nearby_cases(query: NearbyCasesQuery):
    """Active cases around a point, most urgent first then nearest."""
    ranked = _coordinator().nearby_cases(
        query.location(), radius_km=query.radius_km, types=query.types, limit=query.limit
    )
    return jsonify({"items": nearby_to_api(ranked), "total": len(ranked)})


@cases_bp.get('/<case_id>')
def get_case(path: CasePath):
    return jsonify(to_api(_coordinator().get_case(path.case_id)))


@cases_bp.patch('/<case_id>')
@require_auth
def update_case(path: CasePath, body: UpdateCaseRequest):
    """Reporter edit, including a status override."""
    case = _coordinator().update_case(path.case_id, g.user_context.user_id, body)
    return jsonify(to_api(case))


@cases_bp.delete('/<case_id>')
@require_auth
def delete_case(path: CasePath):
    """Cancel a case. The case and its history are kept."""
    _coordinator().delete_case(path.case_id, g.user_context.user_id)
    return '', 204


@cases_bp.post('/<case_id>/accept')
@require_auth
@rate_limit('accept_case')
def accept_case(path: CasePath, body: AcceptCaseRequest):
    """Accept a case as a volunteer."""
    record = _coordinator().accept(path.case_id, g.user_context.user_id, location=body.location())
    return jsonify(to_api(record)), 201


@cases_bp.post('/<case_id>/withdraw')
@require_auth
def withdraw_case(path: CasePath):
    record = _coordinator().withdraw(path.case_id, g.user_context.user_id)
    return jsonify(to_api(record))


@cases_bp.put('/<case_id>/volunteer-status')
@require_auth
def update_volunteer_status(path: CasePath, body: UpdateVolunteerStatusRequest):
    """Report progress: on the way, on site, handling, completed or withdrawn."""
    record = _coordinator().update_volunteer_status(
        path.case_id, g.user_context.user_id, body.status, note=body.note
    )
    return jsonify(to_api(record))


@cases_bp.get('/<case_id>/volunteers')
def list_case_volunteers(path: CasePath):
    return jsonify({"items": to_api_list(_coordinator().list_volunteers(path.case_id))})


@cases_bp.get('/<case_id>/updates')
def list_case_updates(path: CasePath):
    return jsonify({"items": to_api_list(_coordinator().list_updates(path.case_id))})


@cases_bp.post('/<case_id>/updates')
@require_auth
def add_case_update(path: CasePath, body: CaseUpdateRequest):
    update = _coordinator().add_update(
        path.case_id, g.user_context.user_id, body.content, media_urls=body.media_urls
    )
    return jsonify(to_api(update)), 201


@cases_bp.get('/<case_id>/comments')
def list_case_comments(path: CasePath, query: PaginationParams):
    result = _coordinator().list_comments(path.case_id, page=query.page, limit=query.limit)
    return jsonify(page_to_api(result))


@cases_bp.post('/<case_id>/comments')
@require_auth
def add_case_comment(path: CasePath, body: CommentRequest):
    comment = _coordinator().add_comment(path.case_id, g.user_context.user_id, body.content)
    return jsonify(to_api(comment)), 201


@comments_bp.delete('/<comment_id>')
@require_auth
def delete_comment(path: CommentPath):
    _coordinator().delete_comment(path.comment_id, g.user_context.user_id)
    return '', 204
