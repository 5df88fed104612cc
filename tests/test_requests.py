"""
Tests for the action request store.

Covers: validation of reasons and proposed data, snapshotting, the
one-pending-request rule, listing/filtering and the stale report.
"""
import pytest
from datetime import datetime, timedelta

from models import db, ActionRequest, AuditEntry, Visitor
from core.governance.errors import (
    AuthorizationError, ConflictError, InvalidStateError, NotFoundError,
    ValidationError,
)
from core.governance.permissions import Actor, Role
from core.governance.requests import (
    create_request, get_request, list_requests, list_stale_requests,
    pending_status, request_stats,
)
from core.governance.approvals import approve_request, reject_request


@pytest.mark.governance
class TestCreateEditRequest:

    def test_edit_request_is_pending(self, app, receptionist, visitor):
        pcr = create_request(
            receptionist, 'visitor', visitor.id, 'edit',
            reason='Typo in phone number',
            proposed_data={'phone': '0899999999'},
        )

        assert pcr.id is not None
        assert pcr.status == 'pending'
        assert pcr.action_type == 'edit'
        assert pcr.proposed_data == {'phone': '0899999999'}
        assert pcr.requested_by == receptionist.id
        assert pcr.requested_by_role == 'receptionist'
        assert pcr.processed_by is None
        assert pcr.processed_at is None

    def test_empty_reason_rejected(self, app, receptionist, visitor):
        """A phone change with an empty reason is refused immediately."""
        with pytest.raises(ValidationError, match='reason is required'):
            create_request(
                receptionist, 'visitor', visitor.id, 'edit',
                reason='',
                proposed_data={'phone': '0899999999'},
            )
        assert ActionRequest.query.count() == 0

    def test_whitespace_reason_rejected(self, app, receptionist, visitor):
        with pytest.raises(ValidationError):
            create_request(
                receptionist, 'visitor', visitor.id, 'edit',
                reason='   ',
                proposed_data={'phone': '0899999999'},
            )

    def test_min_reason_length_from_config(self, app, receptionist, visitor, monkeypatch):
        monkeypatch.setitem(app.config, 'GOVERNANCE_MIN_REASON_LENGTH', 10)
        with pytest.raises(ValidationError, match='at least 10 characters'):
            create_request(
                receptionist, 'visitor', visitor.id, 'edit',
                reason='typo',
                proposed_data={'phone': '0899999999'},
            )

    def test_reason_is_stripped(self, app, receptionist, visitor):
        pcr = create_request(
            receptionist, 'visitor', visitor.id, 'edit',
            reason='  Typo  ',
            proposed_data={'phone': '0899999999'},
        )
        assert pcr.reason == 'Typo'

    def test_missing_proposed_data(self, app, receptionist, visitor):
        with pytest.raises(ValidationError, match='require proposed_data'):
            create_request(receptionist, 'visitor', visitor.id, 'edit', reason='fix')

    def test_no_changed_fields(self, app, receptionist, visitor):
        with pytest.raises(ValidationError, match='no changed fields'):
            create_request(
                receptionist, 'visitor', visitor.id, 'edit',
                reason='fix',
                proposed_data={'phone': '0811111111', 'full_name': 'Siti Rahma'},
            )

    def test_unchanged_values_are_dropped(self, app, receptionist, visitor):
        pcr = create_request(
            receptionist, 'visitor', visitor.id, 'edit',
            reason='fix',
            proposed_data={'phone': '0811111111', 'purpose': 'Interview'},
        )
        assert pcr.proposed_data == {'purpose': 'Interview'}

    def test_unknown_field_rejected(self, app, receptionist, visitor):
        with pytest.raises(ValidationError, match='not editable') as exc:
            create_request(
                receptionist, 'visitor', visitor.id, 'edit',
                reason='fix',
                proposed_data={'version': 99},
            )
        assert exc.value.details['fields'] == ['version']

    @pytest.mark.parametrize('proposed', [
        {'full_name': ''},
        {'full_name': 'A'},
        {'phone': '123'},
        {'phone': 'call me'},
        {'email': 'not-an-email'},
    ])
    def test_field_constraints(self, app, receptionist, visitor, proposed):
        with pytest.raises(ValidationError):
            create_request(
                receptionist, 'visitor', visitor.id, 'edit',
                reason='fix', proposed_data=proposed,
            )

    def test_lost_item_choice_constraint(self, app, receptionist, lost_item):
        with pytest.raises(ValidationError, match='must be one of'):
            create_request(
                receptionist, 'lost_item', lost_item.id, 'edit',
                reason='fix', proposed_data={'status': 'stolen'},
            )

    def test_missing_entity(self, app, receptionist):
        with pytest.raises(NotFoundError):
            create_request(
                receptionist, 'visitor', 99999, 'edit',
                reason='fix', proposed_data={'phone': '0899999999'},
            )

    def test_unknown_entity_type(self, app, receptionist):
        with pytest.raises(ValidationError, match='Unknown entity type'):
            create_request(receptionist, 'complaint', 1, 'delete', reason='spam')

    @pytest.mark.parametrize('entity_type', [['visitor'], {'type': 'visitor'}, 7, None])
    def test_non_string_entity_type(self, app, receptionist, entity_type):
        with pytest.raises(ValidationError, match='Unknown entity type'):
            create_request(receptionist, entity_type, 1, 'delete', reason='spam')

    def test_invalid_action_type(self, app, receptionist, visitor):
        with pytest.raises(ValidationError, match='Invalid action_type'):
            create_request(receptionist, 'visitor', visitor.id, 'archive', reason='old')

    def test_plain_user_cannot_request(self, app, visitor):
        nobody = Actor(id=12345, name='Guest', role=Role.USER)
        with pytest.raises(AuthorizationError):
            create_request(nobody, 'visitor', visitor.id, 'delete', reason='spam')


@pytest.mark.governance
class TestCreateDeleteRequest:

    def test_delete_request(self, app, receptionist, visitor):
        pcr = create_request(
            receptionist, 'visitor', visitor.id, 'delete',
            reason='duplicate entry',
        )
        assert pcr.status == 'pending'
        assert pcr.action_type == 'delete'
        assert pcr.proposed_data is None

    def test_proposed_data_ignored_for_delete(self, app, receptionist, visitor):
        pcr = create_request(
            receptionist, 'visitor', visitor.id, 'delete',
            reason='duplicate entry', proposed_data={'phone': '0899999999'},
        )
        assert pcr.proposed_data is None

    def test_request_against_deleted_entity(self, app, receptionist, manager, visitor):
        pcr = create_request(receptionist, 'visitor', visitor.id, 'delete', reason='dup')
        approve_request(pcr.id, manager)

        with pytest.raises(InvalidStateError, match='is deleted'):
            create_request(receptionist, 'visitor', visitor.id, 'delete', reason='again')
        with pytest.raises(InvalidStateError):
            create_request(
                receptionist, 'visitor', visitor.id, 'edit',
                reason='fix', proposed_data={'phone': '0899999999'},
            )


@pytest.mark.governance
class TestSnapshot:

    def test_original_data_holds_governed_fields(self, app, receptionist, visitor):
        pcr = create_request(receptionist, 'visitor', visitor.id, 'delete', reason='dup')

        assert pcr.original_data['full_name'] == 'Siti Rahma'
        assert pcr.original_data['phone'] == '0811111111'
        assert pcr.original_data['deleted_at'] is None
        # Non-governed columns are not part of the snapshot
        assert 'version' not in pcr.original_data
        assert 'check_in_time' not in pcr.original_data

    def test_entity_version_captured(self, app, receptionist, visitor):
        pcr = create_request(receptionist, 'visitor', visitor.id, 'delete', reason='dup')
        assert pcr.entity_version == db.session.get(Visitor, visitor.id).version

    def test_snapshot_fixed_after_entity_changes(self, app, receptionist, visitor):
        pcr = create_request(
            receptionist, 'visitor', visitor.id, 'edit',
            reason='fix', proposed_data={'purpose': 'Interview'},
        )
        request_id = pcr.id

        v = db.session.get(Visitor, visitor.id)
        v.location = 'Lobby B'
        db.session.commit()
        db.session.expire_all()

        reloaded = get_request(request_id)
        assert reloaded.original_data['location'] == 'Lobby A'

    def test_original_data_is_immutable(self, app, receptionist, visitor):
        pcr = create_request(receptionist, 'visitor', visitor.id, 'delete', reason='dup')

        pcr.original_data = {'full_name': 'Tampered'}
        with pytest.raises(ValueError, match='immutable'):
            db.session.commit()
        db.session.rollback()

    def test_request_creation_writes_no_audit_entry(self, app, receptionist, visitor):
        before = AuditEntry.query.count()
        create_request(receptionist, 'visitor', visitor.id, 'delete', reason='dup')
        assert AuditEntry.query.count() == before


@pytest.mark.governance
class TestOnePendingRequest:

    def test_duplicate_pending_request_conflicts(self, app, receptionist, visitor):
        first = create_request(
            receptionist, 'visitor', visitor.id, 'edit',
            reason='fix', proposed_data={'phone': '0899999999'},
        )
        with pytest.raises(ConflictError) as exc:
            create_request(
                receptionist, 'visitor', visitor.id, 'edit',
                reason='fix again', proposed_data={'purpose': 'Interview'},
            )
        assert exc.value.details['request_id'] == first.id

    def test_other_requester_also_conflicts(self, app, receptionist, other_receptionist, visitor):
        create_request(receptionist, 'visitor', visitor.id, 'delete', reason='dup')
        with pytest.raises(ConflictError):
            create_request(other_receptionist, 'visitor', visitor.id, 'delete', reason='dup')

    def test_different_action_type_allowed(self, app, receptionist, visitor):
        create_request(
            receptionist, 'visitor', visitor.id, 'edit',
            reason='fix', proposed_data={'phone': '0899999999'},
        )
        pcr = create_request(receptionist, 'visitor', visitor.id, 'delete', reason='dup')
        assert pcr.status == 'pending'

    def test_same_id_different_entity_type_allowed(self, app, receptionist, visitor, lost_item):
        create_request(receptionist, 'visitor', visitor.id, 'delete', reason='dup')
        pcr = create_request(receptionist, 'lost_item', lost_item.id, 'delete', reason='dup')
        assert pcr.status == 'pending'

    def test_new_request_after_decision(self, app, receptionist, manager, visitor):
        first = create_request(
            receptionist, 'visitor', visitor.id, 'edit',
            reason='fix', proposed_data={'phone': '0899999999'},
        )
        reject_request(first.id, manager, 'insufficient evidence')

        second = create_request(
            receptionist, 'visitor', visitor.id, 'edit',
            reason='fix with proof', proposed_data={'phone': '0899999999'},
        )
        assert second.id != first.id
        assert second.status == 'pending'

    def test_unique_index_backs_the_rule(self, app, receptionist, visitor):
        from sqlalchemy.exc import IntegrityError

        def row():
            return ActionRequest(
                entity_type='visitor', entity_id=visitor.id, action_type='delete',
                status='pending', reason='dup', original_data={},
                entity_version=1, requested_by=receptionist.id,
                requested_by_name=receptionist.name, requested_by_role='receptionist',
            )

        db.session.add(row())
        db.session.commit()
        db.session.add(row())
        with pytest.raises(IntegrityError):
            db.session.commit()
        db.session.rollback()


@pytest.mark.governance
class TestListRequests:

    def _seed(self, receptionist, other_receptionist, visitor, lost_item):
        a = create_request(
            receptionist, 'visitor', visitor.id, 'edit',
            reason='fix', proposed_data={'phone': '0899999999'},
        )
        b = create_request(other_receptionist, 'visitor', visitor.id, 'delete', reason='dup')
        c = create_request(receptionist, 'lost_item', lost_item.id, 'delete', reason='dup')
        return a, b, c

    def test_newest_first(self, app, receptionist, other_receptionist, visitor, lost_item):
        a, b, c = self._seed(receptionist, other_receptionist, visitor, lost_item)
        assert [r.id for r in list_requests()] == [c.id, b.id, a.id]

    def test_filters(self, app, receptionist, other_receptionist, manager, visitor, lost_item):
        a, b, c = self._seed(receptionist, other_receptionist, visitor, lost_item)
        approve_request(c.id, manager)

        assert {r.id for r in list_requests(status='pending')} == {a.id, b.id}
        assert [r.id for r in list_requests(status='approved')] == [c.id]
        assert [r.id for r in list_requests(action_type='edit')] == [a.id]
        assert [r.id for r in list_requests(entity_type='lost_item')] == [c.id]
        assert {r.id for r in list_requests(entity_type='visitor', entity_id=visitor.id)} == {a.id, b.id}
        assert [r.id for r in list_requests(requested_by=other_receptionist.id)] == [b.id]

    def test_limit(self, app, receptionist, other_receptionist, visitor, lost_item):
        self._seed(receptionist, other_receptionist, visitor, lost_item)
        assert len(list_requests(limit=2)) == 2

    def test_invalid_filters(self, app):
        with pytest.raises(ValidationError):
            list_requests(status='cancelled')
        with pytest.raises(ValidationError):
            list_requests(action_type='archive')
        with pytest.raises(ValidationError):
            list_requests(entity_type='complaint')

    def test_get_missing_request(self, app):
        with pytest.raises(NotFoundError):
            get_request(424242)


@pytest.mark.governance
class TestStaleRequests:

    def test_old_pending_requests_reported(self, app, receptionist, visitor, lost_item):
        old = create_request(receptionist, 'visitor', visitor.id, 'delete', reason='dup')
        create_request(receptionist, 'lost_item', lost_item.id, 'delete', reason='dup')

        old.requested_at = datetime.utcnow() - timedelta(hours=100)
        db.session.commit()

        stale = list_stale_requests()
        assert [r.id for r in stale] == [old.id]
        # Reporting only; nothing expires
        assert stale[0].status == 'pending'

    def test_max_age_override(self, app, receptionist, visitor):
        pcr = create_request(receptionist, 'visitor', visitor.id, 'delete', reason='dup')
        pcr.requested_at = datetime.utcnow() - timedelta(hours=2)
        db.session.commit()

        assert list_stale_requests() == []
        assert [r.id for r in list_stale_requests(max_age_hours=1)] == [pcr.id]

    def test_decided_requests_never_stale(self, app, receptionist, manager, visitor):
        pcr = create_request(receptionist, 'visitor', visitor.id, 'delete', reason='dup')
        pcr.requested_at = datetime.utcnow() - timedelta(hours=100)
        db.session.commit()
        reject_request(pcr.id, manager, 'not a duplicate')

        assert list_stale_requests() == []


@pytest.mark.governance
class TestRequestReports:

    def test_stats_count_every_status(self, app, receptionist, other_receptionist, manager, visitor, lost_item):
        edit = create_request(
            receptionist, 'visitor', visitor.id, 'edit',
            reason='fix', proposed_data={'phone': '0899999999'},
        )
        create_request(other_receptionist, 'visitor', visitor.id, 'delete', reason='dup')
        item_delete = create_request(receptionist, 'lost_item', lost_item.id, 'delete', reason='dup')
        approve_request(edit.id, manager)
        reject_request(item_delete.id, manager, 'still unclaimed')

        stats = request_stats()

        assert stats['total'] == 3
        assert stats['by_status'] == {'pending': 1, 'approved': 1, 'rejected': 1}
        assert stats['by_action']['edit'] == {'pending': 0, 'approved': 1, 'rejected': 0}
        assert stats['by_action']['delete'] == {'pending': 1, 'approved': 0, 'rejected': 1}
        assert stats['by_entity']['visitor'] == {'pending': 1, 'approved': 1, 'rejected': 0}
        assert stats['by_entity']['lost_item'] == {'pending': 0, 'approved': 0, 'rejected': 1}

    def test_stats_filtered_by_entity_type(self, app, receptionist, visitor, lost_item):
        create_request(receptionist, 'visitor', visitor.id, 'delete', reason='dup')
        create_request(receptionist, 'lost_item', lost_item.id, 'delete', reason='dup')

        stats = request_stats(entity_type='lost_item')
        assert stats['total'] == 1
        assert list(stats['by_entity']) == ['lost_item']

    def test_stats_when_empty(self, app):
        stats = request_stats()
        assert stats['total'] == 0
        assert stats['by_status'] == {'pending': 0, 'approved': 0, 'rejected': 0}
        assert stats['by_entity'] == {}

    def test_stats_unknown_entity_type(self, app):
        with pytest.raises(ValidationError, match='Unknown entity type'):
            request_stats(entity_type='complaint')

    def test_pending_status_per_record(self, app, receptionist, manager, visitor):
        from core.records import create_visitor

        quiet = create_visitor(receptionist, full_name='Dewi Lestari', phone='0822222222')
        old = create_request(
            receptionist, 'visitor', visitor.id, 'edit',
            reason='fix', proposed_data={'phone': '0899999999'},
        )
        reject_request(old.id, manager, 'number was right')
        pending = create_request(receptionist, 'visitor', visitor.id, 'delete', reason='dup')

        status = pending_status('visitor', [visitor.id, quiet.id])

        assert status[visitor.id]['has_pending'] is True
        assert status[visitor.id]['pending'] == {'delete': pending}
        assert [r.id for r in status[visitor.id]['requests']] == [pending.id, old.id]
        assert status[quiet.id] == {'has_pending': False, 'pending': {}, 'requests': []}

    def test_pending_status_scoped_to_entity_type(self, app, receptionist, visitor, lost_item):
        create_request(receptionist, 'lost_item', lost_item.id, 'delete', reason='dup')
        status = pending_status('visitor', [lost_item.id])
        assert status[lost_item.id]['has_pending'] is False

    def test_pending_status_accepts_numeric_strings(self, app, receptionist, visitor):
        create_request(receptionist, 'visitor', visitor.id, 'delete', reason='dup')
        status = pending_status('visitor', [str(visitor.id), visitor.id])
        assert list(status) == [visitor.id]
        assert status[visitor.id]['has_pending'] is True

    @pytest.mark.parametrize('entity_ids', [[], None, 'abc', {'id': 1}])
    def test_pending_status_needs_id_list(self, app, entity_ids):
        with pytest.raises(ValidationError, match='non-empty array'):
            pending_status('visitor', entity_ids)

    def test_pending_status_caps_id_count(self, app):
        with pytest.raises(ValidationError, match='Maximum 100'):
            pending_status('visitor', list(range(1, 102)))

    def test_pending_status_allows_exactly_100(self, app):
        status = pending_status('visitor', list(range(1, 101)))
        assert len(status) == 100

    @pytest.mark.parametrize('bad_id', ['abc', None, True, [1], 2.5])
    def test_pending_status_invalid_id(self, app, bad_id):
        with pytest.raises(ValidationError, match='Invalid entity id'):
            pending_status('visitor', [1, bad_id])

    def test_pending_status_unknown_entity_type(self, app):
        with pytest.raises(ValidationError, match='Unknown entity type'):
            pending_status(['visitor'], [1])
