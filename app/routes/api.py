import time

from flask import Blueprint, current_app
from flask_login import current_user

from app.schemas import (
    AppealRequest,
    AssignRequest,
    BulkModerateRequest,
    ModerateContentRequest,
    QueueListParams,
    ReportListParams,
    ReportRequest,
    ResolveReportRequest,
    ReviewRequest,
    RuleToggleRequest,
    StatisticsParams,
)
from app.services.moderation.results import ContentType
from app.services.moderation.rule_engine import rule_registry
from app.services.moderation_orchestrator import get_orchestrator
from app.services.reporting_service import reporting_service
from app.services.review_queue import review_queue
from app.utils.auth import require_admin, require_moderator, require_user
from app.utils.error_handlers import (
    api_error_response,
    api_success_response,
    handle_api_error,
    validate_json_request,
    validate_query_params,
)

api_bp = Blueprint('api', __name__)


def _enum_value(value):
    return value.value if value is not None else None


@api_bp.route('/moderate', methods=['POST'])
@require_user
@validate_json_request(ModerateContentRequest)
@handle_api_error
async def moderate_content(validated_data=None):
    """
    Moderate one piece of content
    """
    request_start_time = time.time()

    result = await get_orchestrator().moderate_content(validated_data.to_content_dict())

    current_app.logger.info(
        f"Moderated {validated_data.content_type.value} {validated_data.content_id} "
        f"in {time.time() - request_start_time:.2f}s")

    return api_success_response({
        'content_id': validated_data.content_id,
        'content_type': validated_data.content_type.value,
        'result': result.to_dict()
    })


@api_bp.route('/moderate/bulk', methods=['POST'])
@require_user
@validate_json_request(BulkModerateRequest)
@handle_api_error
async def bulk_moderate_content(validated_data=None):
    results = await get_orchestrator().bulk_moderate_content(
        [item.to_content_dict() for item in validated_data.items])

    return api_success_response({
        'results': [{
            'content_id': entry['content_id'],
            'content_type': entry['content_type'],
            'result': entry['result'].to_dict()
        } for entry in results],
        'total': len(results)
    })


@api_bp.route('/status/<content_id>/<content_type>', methods=['GET'])
@require_user
@handle_api_error
async def get_moderation_status(content_id, content_type):
    if content_type not in {member.value for member in ContentType}:
        return api_error_response('Invalid content type', 400, 'VALIDATION_ERROR')

    status = await get_orchestrator().get_moderation_status(content_id, content_type)
    if not status:
        return api_error_response('Moderation status not found', 404, 'NOT_FOUND')

    return api_success_response({'status': status})


@api_bp.route('/appeal', methods=['POST'])
@require_user
@validate_json_request(AppealRequest)
@handle_api_error
async def appeal_moderation_decision(validated_data=None):
    appeal = await get_orchestrator().appeal_moderation_decision(
        validated_data.content_id,
        validated_data.content_type.value,
        current_user.id,
        validated_data.reason
    )
    return api_success_response({'appeal': appeal}, message='Appeal submitted', status_code=201)


@api_bp.route('/report', methods=['POST'])
@require_user
@validate_json_request(ReportRequest)
@handle_api_error
async def submit_report(validated_data=None):
    report = await reporting_service.submit_report(
        reporter_id=current_user.id,
        report_type=validated_data.report_type,
        reason=validated_data.reason,
        reported_user_id=validated_data.reported_user_id,
        content_id=validated_data.content_id,
        content_type=_enum_value(validated_data.content_type),
        evidence=validated_data.evidence
    )
    return api_success_response({'report': report}, message='Report submitted', status_code=201)


@api_bp.route('/reports', methods=['GET'])
@require_moderator
@validate_query_params(ReportListParams)
@handle_api_error
async def get_reports(validated_params=None):
    listing = await reporting_service.get_reports_for_review(
        status=validated_params.status,
        priority=_enum_value(validated_params.priority),
        report_type=validated_params.report_type,
        limit=validated_params.limit,
        offset=validated_params.offset
    )
    return api_success_response({
        **listing,
        'pagination': {
            'limit': validated_params.limit,
            'offset': validated_params.offset,
            'has_more': validated_params.offset + len(listing['reports']) < listing['total_count']
        }
    })


@api_bp.route('/reports/<report_id>/resolve', methods=['PUT'])
@require_moderator
@validate_json_request(ResolveReportRequest)
@handle_api_error
async def resolve_report(report_id, validated_data=None):
    report = await reporting_service.resolve_report(
        report_id,
        current_user.id,
        validated_data.resolution,
        action=_enum_value(validated_data.action)
    )
    if not report:
        return api_error_response('Failed to resolve report', 500, 'RESOLUTION_FAILED')

    return api_success_response({'report': report}, message='Report resolved')


@api_bp.route('/queue', methods=['GET'])
@require_moderator
@validate_query_params(QueueListParams)
@handle_api_error
async def get_queue(validated_params=None):
    listing = await review_queue.get_queue_items(
        status=validated_params.status,
        priority=_enum_value(validated_params.priority),
        severity=validated_params.severity,
        assigned_to=validated_params.assigned_to,
        limit=validated_params.limit,
        offset=validated_params.offset
    )
    return api_success_response({
        **listing,
        'pagination': {
            'limit': validated_params.limit,
            'offset': validated_params.offset,
            'has_more': validated_params.offset + len(listing['items']) < listing['total_count']
        }
    })


@api_bp.route('/queue/<item_id>/assign', methods=['PUT'])
@require_moderator
@validate_json_request(AssignRequest)
@handle_api_error
async def assign_queue_item(item_id, validated_data=None):
    if validated_data.auto:
        item = await review_queue.auto_assign(item_id)
    else:
        item = await review_queue.assign_to_reviewer(item_id, validated_data.reviewer_id or current_user.id)

    if not item:
        return api_error_response('Queue item is not open for assignment', 409, 'ASSIGNMENT_FAILED')

    return api_success_response({'item': item}, message='Queue item assigned')


@api_bp.route('/queue/<item_id>/review', methods=['PUT'])
@require_moderator
@validate_json_request(ReviewRequest)
@handle_api_error
async def review_queue_item(item_id, validated_data=None):
    item = await review_queue.complete_review(
        item_id,
        current_user.id,
        validated_data.decision.value,
        review_notes=validated_data.review_notes,
        escalation_reason=validated_data.escalation_reason
    )
    if not item:
        return api_error_response('Queue item is not open for review', 409, 'REVIEW_FAILED')

    return api_success_response({'item': item}, message='Review completed')


@api_bp.route('/statistics', methods=['GET'])
@require_moderator
@validate_query_params(StatisticsParams)
@handle_api_error
async def get_statistics(validated_params=None):
    statistics = await get_orchestrator().get_moderation_statistics(validated_params.time_range)
    statistics['reports'] = await reporting_service.get_report_statistics(statistics['time_range'])
    statistics['queue'] = await review_queue.get_queue_statistics()
    return api_success_response({'statistics': statistics})


@api_bp.route('/rules', methods=['GET'])
@require_moderator
@handle_api_error
async def get_rules():
    return api_success_response({
        'rules': rule_registry.get_rules(),
        'active_count': len(rule_registry.get_active_rules())
    })


@api_bp.route('/rules/<rule_id>', methods=['PUT'])
@require_admin
@validate_json_request(RuleToggleRequest)
@handle_api_error
async def update_rule(rule_id, validated_data=None):
    if not rule_registry.set_status(rule_id, validated_data.is_active):
        return api_error_response(f'Rule {rule_id} not found', 404, 'NOT_FOUND')

    current_app.logger.info(
        f"Rule {rule_id} set to {'active' if validated_data.is_active else 'inactive'} by {current_user.id}")
    return api_success_response({'rule_id': rule_id, 'is_active': validated_data.is_active})
