"""
Database models for the Visitor Desk governance service
"""
from datetime import datetime
from flask_sqlalchemy import SQLAlchemy
from sqlalchemy import event, inspect

db = SQLAlchemy()


class User(db.Model):
    """Staff account, provisioned by the identity layer"""
    __tablename__ = 'users'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    email = db.Column(db.String(255), unique=True, nullable=False, index=True)
    # Free-form as issued by the identity layer; normalized by the permission gate
    role = db.Column(db.String(50), nullable=False, default='receptionist')
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    def __repr__(self):
        return f'<User {self.email} ({self.role})>'

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'email': self.email,
            'role': self.role,
        }


class Visitor(db.Model):
    """A checked-in visitor record"""
    __tablename__ = 'visitors'

    id = db.Column(db.Integer, primary_key=True)
    full_name = db.Column(db.String(255), nullable=False)
    phone = db.Column(db.String(20), nullable=False)
    email = db.Column(db.String(255))
    institution = db.Column(db.String(255))
    purpose = db.Column(db.String(255))
    person_to_meet = db.Column(db.String(255))
    location = db.Column(db.String(255))
    address = db.Column(db.Text)
    id_number = db.Column(db.String(100))

    status = db.Column(db.String(20), default='checked_in', nullable=False)  # 'checked_in', 'checked_out'
    check_in_time = db.Column(db.DateTime, default=datetime.utcnow)
    check_out_time = db.Column(db.DateTime)
    input_by_user_id = db.Column(db.Integer, db.ForeignKey('users.id'))

    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Soft delete
    deleted_at = db.Column(db.DateTime, index=True)
    deleted_by = db.Column(db.Integer, db.ForeignKey('users.id'))

    # Optimistic concurrency: bumped by the ORM on every UPDATE
    version = db.Column(db.Integer, nullable=False)
    __mapper_args__ = {'version_id_col': version}

    def __repr__(self):
        return f'<Visitor {self.id} {self.full_name}>'

    def to_dict(self):
        return {
            'id': self.id,
            'full_name': self.full_name,
            'phone': self.phone,
            'email': self.email,
            'institution': self.institution,
            'purpose': self.purpose,
            'person_to_meet': self.person_to_meet,
            'location': self.location,
            'address': self.address,
            'id_number': self.id_number,
            'status': self.status,
            'check_in_time': self.check_in_time.isoformat() if self.check_in_time else None,
            'check_out_time': self.check_out_time.isoformat() if self.check_out_time else None,
            'input_by_user_id': self.input_by_user_id,
            'updated_at': self.updated_at.isoformat() if self.updated_at else None,
            'deleted_at': self.deleted_at.isoformat() if self.deleted_at else None,
            'deleted_by': self.deleted_by,
            'version': self.version,
        }


class LostItem(db.Model):
    """An item found on the premises and held by the front desk"""
    __tablename__ = 'lost_items'

    id = db.Column(db.Integer, primary_key=True)
    item_name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text)
    category = db.Column(db.String(100))
    found_location = db.Column(db.String(255), nullable=False)
    found_at = db.Column(db.DateTime, default=datetime.utcnow)
    finder_name = db.Column(db.String(255))
    finder_contact = db.Column(db.String(100))
    condition_status = db.Column(db.String(20), default='good', nullable=False)  # 'excellent', 'good', 'fair', 'poor'
    status = db.Column(db.String(20), default='found', nullable=False)  # 'found', 'returned', 'disposed'
    notes = db.Column(db.Text)
    input_by_user_id = db.Column(db.Integer, db.ForeignKey('users.id'))

    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    deleted_at = db.Column(db.DateTime, index=True)
    deleted_by = db.Column(db.Integer, db.ForeignKey('users.id'))

    version = db.Column(db.Integer, nullable=False)
    __mapper_args__ = {'version_id_col': version}

    def __repr__(self):
        return f'<LostItem {self.id} {self.item_name} ({self.status})>'

    def to_dict(self):
        return {
            'id': self.id,
            'item_name': self.item_name,
            'description': self.description,
            'category': self.category,
            'found_location': self.found_location,
            'found_at': self.found_at.isoformat() if self.found_at else None,
            'finder_name': self.finder_name,
            'finder_contact': self.finder_contact,
            'condition_status': self.condition_status,
            'status': self.status,
            'notes': self.notes,
            'input_by_user_id': self.input_by_user_id,
            'updated_at': self.updated_at.isoformat() if self.updated_at else None,
            'deleted_at': self.deleted_at.isoformat() if self.deleted_at else None,
            'deleted_by': self.deleted_by,
            'version': self.version,
        }


# ============================================
# Governance Models
# ============================================

class ActionRequest(db.Model):
    """A proposed edit or delete of a governed record, awaiting one decision"""
    __tablename__ = 'action_requests'

    VALID_STATUSES = ('pending', 'approved', 'rejected')
    VALID_ACTIONS = ('edit', 'delete')

    id = db.Column(db.Integer, primary_key=True)
    entity_type = db.Column(db.String(50), nullable=False, index=True)  # 'visitor', 'lost_item'
    entity_id = db.Column(db.Integer, nullable=False, index=True)
    action_type = db.Column(db.String(20), nullable=False, index=True)  # 'edit', 'delete'
    status = db.Column(db.String(20), nullable=False, default='pending', index=True)
    reason = db.Column(db.Text, nullable=False)

    # Snapshot of the governed fields when the request was filed
    original_data = db.Column(db.JSON, nullable=False)
    # Only the changed fields, edit requests only
    proposed_data = db.Column(db.JSON)
    # Entity version captured together with original_data
    entity_version = db.Column(db.Integer, nullable=False)

    requested_by = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)
    requested_by_name = db.Column(db.String(255), nullable=False)
    requested_by_role = db.Column(db.String(50), nullable=False)
    requested_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow, index=True)

    processed_by = db.Column(db.Integer, db.ForeignKey('users.id'))
    processed_by_name = db.Column(db.String(255))
    processed_by_role = db.Column(db.String(50))
    processed_at = db.Column(db.DateTime)
    decision_notes = db.Column(db.Text)

    __table_args__ = (
        # At most one pending request per (entity, action)
        db.Index(
            'uq_action_requests_one_pending',
            'entity_type', 'entity_id', 'action_type',
            unique=True,
            sqlite_where=db.text("status = 'pending'"),
            postgresql_where=db.text("status = 'pending'"),
        ),
    )

    def __repr__(self):
        return (f'<ActionRequest {self.id} {self.action_type} '
                f'{self.entity_type}#{self.entity_id} {self.status}>')

    def to_dict(self):
        return {
            'id': self.id,
            'entity_type': self.entity_type,
            'entity_id': self.entity_id,
            'action_type': self.action_type,
            'status': self.status,
            'reason': self.reason,
            'original_data': self.original_data,
            'proposed_data': self.proposed_data,
            'entity_version': self.entity_version,
            'requested_by': {
                'id': self.requested_by,
                'name': self.requested_by_name,
                'role': self.requested_by_role,
            },
            'requested_at': self.requested_at.isoformat() if self.requested_at else None,
            'processed_by': {
                'id': self.processed_by,
                'name': self.processed_by_name,
                'role': self.processed_by_role,
            } if self.processed_by else None,
            'processed_at': self.processed_at.isoformat() if self.processed_at else None,
            'decision_notes': self.decision_notes,
        }


class AuditEntry(db.Model):
    """Append-only history row for a governed record"""
    __tablename__ = 'audit_entries'

    VALID_KINDS = ('created', 'updated', 'status_changed', 'returned', 'deleted', 'reverted')

    id = db.Column(db.Integer, primary_key=True)
    entity_type = db.Column(db.String(50), nullable=False)
    entity_id = db.Column(db.Integer, nullable=False)
    action_type = db.Column(db.String(30), nullable=False, index=True)
    old_data = db.Column(db.JSON)
    new_data = db.Column(db.JSON)
    changed_fields = db.Column(db.JSON, nullable=False, default=list)

    actor_id = db.Column(db.Integer, db.ForeignKey('users.id'))
    actor_name = db.Column(db.String(255))
    actor_role = db.Column(db.String(50))
    notes = db.Column(db.Text)

    request_id = db.Column(db.Integer, db.ForeignKey('action_requests.id'))
    source_entry_id = db.Column(db.Integer, db.ForeignKey('audit_entries.id'))

    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (
        db.Index('ix_audit_entries_entity', 'entity_type', 'entity_id', 'created_at'),
    )

    def __repr__(self):
        return f'<AuditEntry {self.id} {self.action_type} {self.entity_type}#{self.entity_id}>'

    def to_dict(self):
        return {
            'id': self.id,
            'entity_type': self.entity_type,
            'entity_id': self.entity_id,
            'action_type': self.action_type,
            'old_data': self.old_data,
            'new_data': self.new_data,
            'changed_fields': self.changed_fields or [],
            'actor': {
                'id': self.actor_id,
                'name': self.actor_name,
                'role': self.actor_role,
            },
            'notes': self.notes,
            'request_id': self.request_id,
            'source_entry_id': self.source_entry_id,
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }


# Frozen columns on a request; only the decision columns may change.
_REQUEST_FROZEN = ('entity_type', 'entity_id', 'action_type', 'reason',
                   'original_data', 'proposed_data', 'entity_version',
                   'requested_by')


@event.listens_for(ActionRequest, 'before_update')
def _freeze_action_request(mapper, connection, target):
    state = inspect(target)
    for name in _REQUEST_FROZEN:
        if state.attrs[name].history.has_changes():
            raise ValueError(f'ActionRequest.{name} is immutable')
    previous = state.attrs.status.history.deleted
    if previous and previous[0] != 'pending':
        raise ValueError(f'ActionRequest {target.id} is already {previous[0]}')


@event.listens_for(AuditEntry, 'before_update')
def _audit_entries_are_append_only(mapper, connection, target):
    raise ValueError('Audit entries cannot be modified')


@event.listens_for(AuditEntry, 'before_delete')
def _audit_entries_are_never_deleted(mapper, connection, target):
    raise ValueError('Audit entries cannot be deleted')
