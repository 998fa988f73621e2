"""Tests for shared helpers: time formatting, error tracking and request schemas."""
from datetime import datetime, timedelta

import pytest
from pydantic import ValidationError

from app.schemas import ModerateContentRequest, ReportRequest, StatisticsParams
from app.schemas.api_schemas import ListFilterParams
from app.services.error_tracker import error_tracker
from app.utils.time_utils import (format_time_ago, format_wait_time,
                                  resolve_time_range, truncate)


class TestTimeUtils:

    @pytest.mark.parametrize("seconds,expected", [
        (0, 'Just now'),
        (59, 'Just now'),
        (5 * 60, '5m'),
        (3 * 3600, '3h'),
        (2 * 86400 + 10, '2d'),
    ])
    def test_format_wait_time(self, seconds, expected):
        assert format_wait_time(seconds) == expected

    def test_format_time_ago(self):
        assert format_time_ago(10) == 'Just now'
        assert format_time_ago(120) == '2m ago'

    def test_resolve_time_range(self):
        label, since = resolve_time_range('7d')
        assert label == '7d'
        assert abs(datetime.utcnow() - since - timedelta(days=7)) < timedelta(seconds=5)

    def test_unknown_range_falls_back(self):
        assert resolve_time_range('1y')[0] == '24h'
        assert resolve_time_range('1y', default='30d')[0] == '30d'

    def test_truncate(self):
        assert truncate(None) == ''
        assert truncate('short') == 'short'
        assert truncate('x' * 120, 100) == 'x' * 100 + '...'


class TestErrorTracker:

    def test_counts_by_kind(self):
        error_tracker.track_error('classifier', 'timeout', content_id='p1', details={'classifier': 'text'})
        error_tracker.track_error('made-up', 'odd')

        stats = error_tracker.get_error_stats()
        assert stats['total_errors'] == 2
        assert stats['error_counts']['classifier'] == 1
        assert stats['error_counts']['other'] == 1
        assert stats['errors_last_5min'] == 2

        recent = error_tracker.get_recent_errors()
        assert recent[0]['content_id'] == 'p1'
        assert recent[0]['time_ago'].endswith('s ago')


class TestSchemas:

    def test_moderation_request_needs_content_or_images(self):
        with pytest.raises(ValidationError):
            ModerateContentRequest(content_id='p1', content_type='post', user_id='u1')

        request = ModerateContentRequest(content_id='p1', content_type='image', user_id='u1',
                                         image_urls=['https://cdn.example.com/a.jpg'])
        assert request.to_content_dict()['content_type'] == 'image'

    def test_moderation_request_forbids_unknown_fields(self):
        with pytest.raises(ValidationError):
            ModerateContentRequest(content_id='p1', content_type='post', user_id='u1',
                                   content='hi', project_id='x')

    def test_report_content_type_is_checked(self):
        with pytest.raises(ValidationError):
            ReportRequest(report_type='spam', reason='x', content_id='p1', content_type='video')

    def test_status_all_lifts_the_filter(self):
        assert ListFilterParams(status='all').status is None
        assert ListFilterParams().status == 'pending'

    def test_limit_bounds(self):
        with pytest.raises(ValidationError):
            ListFilterParams(limit=500)

    def test_statistics_default(self):
        assert StatisticsParams().time_range == '24h'
