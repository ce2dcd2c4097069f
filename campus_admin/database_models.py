import enum
import secrets
from datetime import date, datetime, timedelta

from sqlalchemy import and_, or_
from sqlalchemy.orm import declared_attr, validates
from werkzeug.security import check_password_hash, generate_password_hash

from .errors import InvalidStateTransition
from .extensions import db


class Role(enum.Enum):
    SUPER_ADMIN = "super_admin"
    ACADEMIC_STAFF = "academic_staff"
    FACULTY = "faculty"
    STUDENT = "student"
    MESS_SUPERVISOR = "mess_supervisor"
    HOSTEL_WARDEN = "hostel_warden"
    HOD = "hod"
    DIRECTOR = "director"


class BloodGroup(enum.Enum):
    A_POS = "A+"
    A_NEG = "A-"
    B_POS = "B+"
    B_NEG = "B-"
    AB_POS = "AB+"
    AB_NEG = "AB-"
    O_POS = "O+"
    O_NEG = "O-"


class ComplaintCategory(enum.Enum):
    ELECTRICAL = "electrical"
    PLUMBING = "plumbing"
    CLEANING = "cleaning"
    MAINTENANCE = "maintenance"
    SECURITY = "security"
    INTERNET = "internet"
    FOOD = "food"
    OTHER = "other"


class ComplaintPriority(enum.Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class ComplaintStatus(enum.Enum):
    OPEN = "open"
    IN_PROGRESS = "in_progress"
    RESOLVED = "resolved"
    COMPLETED = "completed"


class AttendanceStatus(enum.Enum):
    PRESENT = "present"
    ABSENT = "absent"
    LATE = "late"
    EXCUSED = "excused"


class HolidayType(enum.Enum):
    NATIONAL = "national_holiday"
    STATE = "state_holiday"
    ACADEMIC = "academic_holiday"
    FESTIVAL = "festival"
    EXAM = "exam_holiday"
    MAINTENANCE = "maintenance_holiday"
    OTHER = "other"


class HolidayCategory(enum.Enum):
    MANDATORY = "mandatory_holiday"
    OPTIONAL = "optional_holiday"
    WORKING_SATURDAY = "working_saturday"
    HALF_DAY = "half_day"


class RecurringPattern(enum.Enum):
    YEARLY = "yearly"
    MONTHLY = "monthly"
    WEEKLY = "weekly"


def values(enum_class):
    return [member.value for member in enum_class]


def generate_id():
    """24 hex characters, the identifier format accepted by the API."""
    return secrets.token_hex(12)


def isoformat(value):
    return value.isoformat() if value else None


def profile_brief(profile, *fields):
    if profile is None:
        return None
    brief = {'id': profile.id, 'name': profile.name, 'email': profile.email}
    for field in fields:
        brief[field] = getattr(profile, field)
    return brief


class BaseModel(db.Model):
    """Identifier and audit timestamps shared by every table."""
    __abstract__ = True

    id = db.Column(db.String(24), primary_key=True, default=generate_id)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    def timestamps(self):
        return {'createdAt': isoformat(self.created_at), 'updatedAt': isoformat(self.updated_at)}

    def apply_changes(self, data, editable):
        """Copy the camelCase keys present in ``data`` onto their columns."""
        for key, attribute in editable.items():
            if key in data:
                setattr(self, attribute, data[key])


class Account(BaseModel):
    """Login credential. Exactly one Profile hangs off every account."""
    __tablename__ = 'accounts'

    email = db.Column(db.String(255), unique=True, nullable=False, index=True)
    password_hash = db.Column(db.String(255), nullable=False)
    is_verified = db.Column(db.Boolean, default=False, nullable=False)
    failed_login_count = db.Column(db.Integer, default=0, nullable=False)
    lock_until = db.Column(db.DateTime)
    last_login = db.Column(db.DateTime)

    profile = db.relationship('Profile', back_populates='account', uselist=False,
                              cascade='all, delete-orphan')

    def __init__(self, **kwargs):
        password = kwargs.pop('password', None)
        super().__init__(**kwargs)
        if password:
            self.set_password(password)
        self.failed_login_count = 0

    @validates('email')
    def validate_email(self, key, email):
        return email.strip().lower()

    def set_password(self, password: str):
        self.password_hash = generate_password_hash(password)

    def check_password(self, password: str) -> bool:
        return check_password_hash(self.password_hash, password)

    def is_locked(self, now=None) -> bool:
        now = now or datetime.utcnow()
        return bool(self.lock_until and now < self.lock_until)

    def clear_expired_lock(self, now=None):
        """A lock that has run out is forgotten along with its failure count."""
        now = now or datetime.utcnow()
        if self.lock_until and now >= self.lock_until:
            self.lock_until = None
            self.failed_login_count = 0

    def register_failed_login(self, max_attempts: int, lockout_minutes: int, now=None):
        now = now or datetime.utcnow()
        self.failed_login_count = (self.failed_login_count or 0) + 1
        if self.failed_login_count >= max_attempts:
            self.lock_until = now + timedelta(minutes=lockout_minutes)

    def register_successful_login(self, now=None):
        self.failed_login_count = 0
        self.lock_until = None
        self.last_login = now or datetime.utcnow()

    def to_dict(self):
        data = {
            'id': self.id,
            'email': self.email,
            'isVerified': self.is_verified,
            'lastLogin': isoformat(self.last_login),
            'lockUntil': isoformat(self.lock_until),
        }
        data.update(self.timestamps())
        return data


class Profile(BaseModel):
    """The authorization subject: role plus role-specific attributes."""
    __tablename__ = 'profiles'

    account_id = db.Column(db.String(24), db.ForeignKey('accounts.id'), unique=True, nullable=False)
    name = db.Column(db.String(100), nullable=False)
    email = db.Column(db.String(255), unique=True, nullable=False, index=True)
    role = db.Column(db.String(20), nullable=False, default=Role.STUDENT.value, index=True)
    phone_number = db.Column(db.String(20))
    blood_group = db.Column(db.String(3))

    # Student attributes
    student_roll_number = db.Column(db.String(50), unique=True)
    hostel_room_no = db.Column(db.String(20))
    hostel_block_number = db.Column(db.String(20))
    branch = db.Column(db.String(100))
    batch_id = db.Column(db.String(24), db.ForeignKey('student_batches.id'))
    section = db.Column(db.String(20))
    year = db.Column(db.Integer)

    # Faculty attributes
    designation = db.Column(db.String(100))
    department = db.Column(db.String(100))

    address = db.Column(db.JSON)
    emergency_contact = db.Column(db.JSON)
    avatar = db.Column(db.String(500))
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    last_active = db.Column(db.DateTime, default=datetime.utcnow)

    account = db.relationship('Account', back_populates='profile')
    batch = db.relationship('StudentBatch')

    __table_args__ = (
        db.CheckConstraint('year IS NULL OR (year >= 1 AND year <= 4)', name='valid_profile_year'),
    )

    @validates('email')
    def validate_email(self, key, email):
        return email.strip().lower()

    # Fields a user may change on their own profile
    SELF_EDITABLE = {
        'name': 'name',
        'phoneNumber': 'phone_number',
        'bloodGroup': 'blood_group',
        'department': 'department',
        'designation': 'designation',
        'studentRollNumber': 'student_roll_number',
        'hostelRoomNo': 'hostel_room_no',
        'branch': 'branch',
        'batch': 'batch_id',
        'section': 'section',
        'year': 'year',
        'address': 'address',
        'emergencyContact': 'emergency_contact',
        'avatar': 'avatar',
    }
    # hostel block is the warden scope attribute: administrators only
    ADMIN_EDITABLE = dict(SELF_EDITABLE, hostelBlockNumber='hostel_block_number', role='role',
                          isActive='is_active')

    def to_dict(self):
        data = {
            'id': self.id,
            'accountId': self.account_id,
            'name': self.name,
            'email': self.email,
            'role': self.role,
            'phoneNumber': self.phone_number,
            'bloodGroup': self.blood_group,
            'studentRollNumber': self.student_roll_number,
            'hostelRoomNo': self.hostel_room_no,
            'hostelBlockNumber': self.hostel_block_number,
            'branch': self.branch,
            'batch': self.batch_id,
            'section': self.section,
            'year': self.year,
            'designation': self.designation,
            'department': self.department,
            'address': self.address,
            'emergencyContact': self.emergency_contact,
            'avatar': self.avatar,
            'isActive': self.is_active,
            'lastActive': isoformat(self.last_active),
        }
        data.update(self.timestamps())
        return data

    def to_user_dict(self):
        """Shape returned by register, login and /auth/me."""
        return {
            'id': self.account_id,
            'profileId': self.id,
            'email': self.email,
            'name': self.name,
            'role': self.role,
            'isActive': self.is_active,
            'isVerified': self.account.is_verified if self.account else False,
        }


# Each status may only advance to the next one
COMPLAINT_TRANSITIONS = {
    ComplaintStatus.OPEN.value: ComplaintStatus.IN_PROGRESS.value,
    ComplaintStatus.IN_PROGRESS.value: ComplaintStatus.RESOLVED.value,
    ComplaintStatus.RESOLVED.value: ComplaintStatus.COMPLETED.value,
}


class Complaint(BaseModel):
    __tablename__ = 'complaints'

    title = db.Column(db.String(200), nullable=False)
    description = db.Column(db.String(1000), nullable=False)
    category = db.Column(db.String(20), nullable=False, index=True)
    priority = db.Column(db.String(10), nullable=False, default=ComplaintPriority.MEDIUM.value)
    status = db.Column(db.String(20), nullable=False, default=ComplaintStatus.OPEN.value, index=True)
    student_id = db.Column(db.String(24), db.ForeignKey('profiles.id'), nullable=False, index=True)

    # Snapshot of the student taken when the complaint is filed
    student_name = db.Column(db.String(100), nullable=False)
    roll_number = db.Column(db.String(50), nullable=False)
    hostel_block = db.Column(db.String(20), nullable=False, index=True)
    room_number = db.Column(db.String(20))
    phone_number = db.Column(db.String(20))

    assigned_to_id = db.Column(db.String(24), db.ForeignKey('profiles.id'))
    assigned_at = db.Column(db.DateTime)
    resolved_by_id = db.Column(db.String(24), db.ForeignKey('profiles.id'))
    resolved_at = db.Column(db.DateTime)
    resolution_notes = db.Column(db.String(500))
    completed_by_id = db.Column(db.String(24), db.ForeignKey('profiles.id'))
    completed_at = db.Column(db.DateTime)
    completion_notes = db.Column(db.String(500))

    is_urgent = db.Column(db.Boolean, default=False, nullable=False)
    tags = db.Column(db.JSON, default=list)
    academic_year = db.Column(db.String(20), nullable=False, index=True)

    student = db.relationship('Profile', foreign_keys=[student_id])
    assigned_to = db.relationship('Profile', foreign_keys=[assigned_to_id])
    resolved_by = db.relationship('Profile', foreign_keys=[resolved_by_id])
    completed_by = db.relationship('Profile', foreign_keys=[completed_by_id])

    @validates('priority')
    def validate_priority(self, key, priority):
        self.is_urgent = priority in (ComplaintPriority.HIGH.value, ComplaintPriority.URGENT.value)
        return priority

    def update_status(self, new_status, actor_id, notes=None, allowed=None, now=None):
        """Advance one step and stamp who did it.

        ``allowed`` narrows the targets a caller may request; anything
        outside it, or any move that is not the next step, is rejected.
        """
        if allowed is not None and new_status not in allowed:
            raise InvalidStateTransition(f"Status cannot be set to {new_status} here")
        if COMPLAINT_TRANSITIONS.get(self.status) != new_status:
            raise InvalidStateTransition(f"Cannot move complaint from {self.status} to {new_status}")

        now = now or datetime.utcnow()
        self.status = new_status
        if new_status == ComplaintStatus.IN_PROGRESS.value:
            self.assigned_to_id = actor_id
            self.assigned_at = now
        elif new_status == ComplaintStatus.RESOLVED.value:
            self.resolved_by_id = actor_id
            self.resolved_at = now
            self.resolution_notes = notes
        elif new_status == ComplaintStatus.COMPLETED.value:
            self.completed_by_id = actor_id
            self.completed_at = now
            self.completion_notes = notes

    def timeline(self):
        events = [{
            'action': 'Complaint Filed',
            'timestamp': self.created_at,
            'user': self.student_name,
            'details': 'Complaint submitted',
        }]
        if self.assigned_at:
            events.append({
                'action': 'Assigned',
                'timestamp': self.assigned_at,
                'user': 'Warden',
                'details': 'Complaint assigned for resolution',
            })
        if self.resolved_at:
            events.append({
                'action': 'Resolved',
                'timestamp': self.resolved_at,
                'user': 'Warden',
                'details': self.resolution_notes or 'Issue resolved',
            })
        if self.completed_at:
            events.append({
                'action': 'Completed',
                'timestamp': self.completed_at,
                'user': self.student_name,
                'details': self.completion_notes or 'Work completed and verified',
            })
        events.sort(key=lambda event: event['timestamp'])
        for event in events:
            event['timestamp'] = isoformat(event['timestamp'])
        return events

    def resolution_time(self):
        if not self.resolved_at or not self.created_at:
            return None
        total_minutes = int((self.resolved_at - self.created_at).total_seconds() // 60)
        return {'hours': total_minutes // 60, 'minutes': total_minutes % 60, 'totalMinutes': total_minutes}

    def to_dict(self):
        data = {
            'id': self.id,
            'title': self.title,
            'description': self.description,
            'category': self.category,
            'priority': self.priority,
            'status': self.status,
            'studentId': self.student_id,
            'student': profile_brief(self.student, 'student_roll_number'),
            'studentInfo': {
                'name': self.student_name,
                'rollNumber': self.roll_number,
                'hostelBlock': self.hostel_block,
                'roomNumber': self.room_number,
                'phoneNumber': self.phone_number,
            },
            'assignedTo': profile_brief(self.assigned_to, 'role'),
            'assignedAt': isoformat(self.assigned_at),
            'resolvedBy': profile_brief(self.resolved_by, 'role'),
            'resolvedAt': isoformat(self.resolved_at),
            'resolutionNotes': self.resolution_notes,
            'completedBy': profile_brief(self.completed_by, 'role'),
            'completedAt': isoformat(self.completed_at),
            'completionNotes': self.completion_notes,
            'isUrgent': self.is_urgent,
            'tags': self.tags or [],
            'academicYear': self.academic_year,
            'resolutionTime': self.resolution_time(),
        }
        data.update(self.timestamps())
        return data


class Attendance(BaseModel):
    """One marked class. Counts are a projection of ``entries``."""
    __tablename__ = 'attendance'

    date = db.Column(db.Date, nullable=False, index=True)
    timetable_id = db.Column(db.String(24))
    subject = db.Column(db.String(100), nullable=False)
    start_time = db.Column(db.String(10), nullable=False)
    end_time = db.Column(db.String(10), nullable=False)
    location = db.Column(db.String(100), nullable=False)
    faculty_id = db.Column(db.String(24), db.ForeignKey('profiles.id'), nullable=False, index=True)
    branch = db.Column(db.String(100), nullable=False)
    section = db.Column(db.String(20), nullable=False)
    year = db.Column(db.Integer, nullable=False)
    semester = db.Column(db.Integer, nullable=False)

    total_students = db.Column(db.Integer, default=0, nullable=False)
    present_count = db.Column(db.Integer, default=0, nullable=False)
    absent_count = db.Column(db.Integer, default=0, nullable=False)
    late_count = db.Column(db.Integer, default=0, nullable=False)
    excused_count = db.Column(db.Integer, default=0, nullable=False)

    is_marked = db.Column(db.Boolean, default=False, nullable=False)
    marked_by_id = db.Column(db.String(24), db.ForeignKey('profiles.id'))
    marked_at = db.Column(db.DateTime)
    academic_year = db.Column(db.String(20), nullable=False, index=True)

    faculty = db.relationship('Profile', foreign_keys=[faculty_id])
    marked_by = db.relationship('Profile', foreign_keys=[marked_by_id])
    entries = db.relationship('AttendanceEntry', back_populates='attendance',
                              cascade='all, delete-orphan', order_by='AttendanceEntry.position')

    __table_args__ = (
        db.UniqueConstraint('date', 'subject', 'start_time', 'branch', 'section', 'year', 'semester',
                            name='uq_attendance_class_slot'),
        db.CheckConstraint('year >= 1 AND year <= 4', name='valid_attendance_year'),
        db.CheckConstraint('semester >= 1 AND semester <= 8', name='valid_attendance_semester'),
    )

    def replace_entries(self, records, marked_by_id, now=None):
        """Swap the whole per-student list and recompute the counts."""
        now = now or datetime.utcnow()
        self.entries = [
            AttendanceEntry(
                position=position,
                student_id=record['studentId'],
                status=record['status'],
                remarks=record.get('remarks'),
                marked_by_id=marked_by_id,
                marked_at=now,
            )
            for position, record in enumerate(records)
        ]
        self.is_marked = True
        self.marked_by_id = marked_by_id
        self.marked_at = now
        self.recompute_counts()

    def recompute_counts(self):
        statuses = [entry.status for entry in self.entries]
        self.total_students = len(statuses)
        self.present_count = statuses.count(AttendanceStatus.PRESENT.value)
        self.absent_count = statuses.count(AttendanceStatus.ABSENT.value)
        self.late_count = statuses.count(AttendanceStatus.LATE.value)
        self.excused_count = statuses.count(AttendanceStatus.EXCUSED.value)

    def entry_for(self, student_id):
        for entry in self.entries:
            if entry.student_id == student_id:
                return entry
        return None

    def to_dict(self):
        data = {
            'id': self.id,
            'date': isoformat(self.date),
            'timetableId': self.timetable_id,
            'classInfo': {
                'subject': self.subject,
                'startTime': self.start_time,
                'endTime': self.end_time,
                'location': self.location,
                'facultyId': self.faculty_id,
                'faculty': profile_brief(self.faculty, 'designation', 'department'),
            },
            'branch': self.branch,
            'section': self.section,
            'year': self.year,
            'semester': self.semester,
            'studentAttendance': [entry.to_dict() for entry in self.entries],
            'totalStudents': self.total_students,
            'presentCount': self.present_count,
            'absentCount': self.absent_count,
            'lateCount': self.late_count,
            'excusedCount': self.excused_count,
            'isMarked': self.is_marked,
            'markedBy': self.marked_by_id,
            'markedAt': isoformat(self.marked_at),
            'academicYear': self.academic_year,
        }
        data.update(self.timestamps())
        return data


class AttendanceEntry(BaseModel):
    __tablename__ = 'attendance_entries'

    attendance_id = db.Column(db.String(24), db.ForeignKey('attendance.id'), nullable=False, index=True)
    position = db.Column(db.Integer, default=0, nullable=False)
    student_id = db.Column(db.String(24), db.ForeignKey('profiles.id'), nullable=False, index=True)
    status = db.Column(db.String(10), nullable=False)
    marked_by_id = db.Column(db.String(24), db.ForeignKey('profiles.id'))
    marked_at = db.Column(db.DateTime)
    remarks = db.Column(db.String(500))

    attendance = db.relationship('Attendance', back_populates='entries')
    student = db.relationship('Profile', foreign_keys=[student_id])

    def to_dict(self):
        return {
            'studentId': self.student_id,
            'student': profile_brief(self.student, 'student_roll_number'),
            'status': self.status,
            'markedBy': self.marked_by_id,
            'markedAt': isoformat(self.marked_at),
            'remarks': self.remarks,
        }


class StudentBatch(BaseModel):
    __tablename__ = 'student_batches'

    name = db.Column(db.String(100), unique=True, nullable=False)

    def to_dict(self):
        data = {'id': self.id, 'name': self.name}
        data.update(self.timestamps())
        return data


class StudentBatchSection(BaseModel):
    __tablename__ = 'student_batch_sections'

    name = db.Column(db.String(50), nullable=False)
    batch_id = db.Column(db.String(24), db.ForeignKey('student_batches.id'), nullable=False, index=True)

    batch = db.relationship('StudentBatch')

    __table_args__ = (
        db.UniqueConstraint('batch_id', 'name', name='uq_section_per_batch'),
    )

    def to_dict(self):
        data = {
            'id': self.id,
            'name': self.name,
            'batch': self.batch_id,
            'batchName': self.batch.name if self.batch else None,
        }
        data.update(self.timestamps())
        return data


class Course(BaseModel):
    __tablename__ = 'courses'

    name = db.Column(db.String(200), nullable=False)
    code = db.Column(db.String(50), nullable=False)
    description = db.Column(db.Text)
    batch_id = db.Column(db.String(24), db.ForeignKey('student_batches.id'), nullable=False, index=True)
    semester = db.Column(db.Integer, nullable=False)
    credits = db.Column(db.Integer, nullable=False)
    academic_year = db.Column(db.String(20), nullable=False, index=True)
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    created_by_id = db.Column(db.String(24), db.ForeignKey('profiles.id'), nullable=False)

    batch = db.relationship('StudentBatch')
    created_by = db.relationship('Profile', foreign_keys=[created_by_id])

    __table_args__ = (
        db.UniqueConstraint('code', 'batch_id', 'academic_year', name='uq_course_code_batch_year'),
        db.CheckConstraint('semester >= 1 AND semester <= 8', name='valid_course_semester'),
        db.CheckConstraint('credits >= 1 AND credits <= 10', name='valid_course_credits'),
    )

    EDITABLE = {
        'name': 'name',
        'code': 'code',
        'description': 'description',
        'batch': 'batch_id',
        'semester': 'semester',
        'credits': 'credits',
        'academicYear': 'academic_year',
        'isActive': 'is_active',
    }

    def to_dict(self):
        data = {
            'id': self.id,
            'name': self.name,
            'code': self.code,
            'description': self.description,
            'batch': {'id': self.batch_id, 'name': self.batch.name if self.batch else None},
            'semester': self.semester,
            'credits': self.credits,
            'academicYear': self.academic_year,
            'isActive': self.is_active,
            'createdBy': profile_brief(self.created_by),
        }
        data.update(self.timestamps())
        return data


class DepartmentBase(BaseModel):
    """Columns shared by academic and faculty departments."""
    __abstract__ = True

    name = db.Column(db.String(100), unique=True, nullable=False)
    code = db.Column(db.String(20), unique=True)
    description = db.Column(db.Text, default='')
    is_active = db.Column(db.Boolean, default=True, nullable=False)

    @declared_attr
    def hod_id(cls):
        return db.Column(db.String(24), db.ForeignKey('profiles.id'), nullable=True)

    @declared_attr
    def hod(cls):
        return db.relationship('Profile', foreign_keys=[cls.hod_id])

    EDITABLE = {
        'name': 'name',
        'code': 'code',
        'description': 'description',
        'isActive': 'is_active',
    }

    def to_dict(self):
        data = {
            'id': self.id,
            'name': self.name,
            'code': self.code,
            'description': self.description,
            'hod': profile_brief(self.hod, 'role'),
            'isActive': self.is_active,
        }
        data.update(self.timestamps())
        return data


class Department(DepartmentBase):
    __tablename__ = 'departments'


class FacultyDepartment(DepartmentBase):
    __tablename__ = 'faculty_departments'


class SubjectAssignment(BaseModel):
    __tablename__ = 'subject_assignments'

    subject = db.Column(db.String(100), nullable=False, index=True)
    faculty_id = db.Column(db.String(24), db.ForeignKey('profiles.id'), nullable=False, index=True)
    department = db.Column(db.String(100))
    academic_year = db.Column(db.String(20), nullable=False)
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    created_by_id = db.Column(db.String(24), db.ForeignKey('profiles.id'), nullable=False)

    faculty = db.relationship('Profile', foreign_keys=[faculty_id])
    created_by = db.relationship('Profile', foreign_keys=[created_by_id])

    __table_args__ = (
        db.UniqueConstraint('subject', 'faculty_id', 'academic_year', name='uq_subject_faculty_year'),
    )

    EDITABLE = {
        'subject': 'subject',
        'facultyId': 'faculty_id',
        'department': 'department',
        'academicYear': 'academic_year',
        'isActive': 'is_active',
    }

    def to_dict(self):
        data = {
            'id': self.id,
            'subject': self.subject,
            'facultyId': self.faculty_id,
            'faculty': profile_brief(self.faculty, 'designation', 'department'),
            'department': self.department,
            'academicYear': self.academic_year,
            'isActive': self.is_active,
            'createdBy': profile_brief(self.created_by),
        }
        data.update(self.timestamps())
        return data


HOLIDAY_AUDIENCES = ('students', 'faculty', 'staff', 'mess', 'hostel')

DEFAULT_HOLIDAY_NOTIFICATIONS = {
    'sendToStudents': True,
    'sendToFaculty': True,
    'sendToStaff': True,
    'reminderDays': 7,
}


class Holiday(BaseModel):
    __tablename__ = 'holidays'

    title = db.Column(db.String(200), nullable=False)
    description = db.Column(db.String(500))
    date = db.Column(db.Date, nullable=False, index=True)
    end_date = db.Column(db.Date, index=True)
    type = db.Column(db.String(30), nullable=False, index=True)
    category = db.Column(db.String(30), nullable=False, default=HolidayCategory.MANDATORY.value)

    affects_students = db.Column(db.Boolean, default=True, nullable=False)
    affects_faculty = db.Column(db.Boolean, default=True, nullable=False)
    affects_staff = db.Column(db.Boolean, default=True, nullable=False)
    affects_mess = db.Column(db.Boolean, default=False, nullable=False)
    affects_hostel = db.Column(db.Boolean, default=False, nullable=False)

    academic_year = db.Column(db.String(20), nullable=False, index=True)
    semester = db.Column(db.Integer)
    is_recurring = db.Column(db.Boolean, default=False, nullable=False)
    recurring_pattern = db.Column(db.String(10), default=RecurringPattern.YEARLY.value)
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    tags = db.Column(db.JSON, default=list)
    notifications = db.Column(db.JSON, default=lambda: dict(DEFAULT_HOLIDAY_NOTIFICATIONS))
    created_by_id = db.Column(db.String(24), db.ForeignKey('profiles.id'), nullable=False)
    updated_by_id = db.Column(db.String(24), db.ForeignKey('profiles.id'))

    created_by = db.relationship('Profile', foreign_keys=[created_by_id])
    updated_by = db.relationship('Profile', foreign_keys=[updated_by_id])

    EDITABLE = {
        'title': 'title',
        'description': 'description',
        'date': 'date',
        'endDate': 'end_date',
        'type': 'type',
        'category': 'category',
        'academicYear': 'academic_year',
        'semester': 'semester',
        'isRecurring': 'is_recurring',
        'recurringPattern': 'recurring_pattern',
        'isActive': 'is_active',
        'tags': 'tags',
        'notifications': 'notifications',
    }

    @staticmethod
    def audience_column(user_type):
        if user_type not in HOLIDAY_AUDIENCES:
            raise ValueError(f"Unknown audience: {user_type}")
        return getattr(Holiday, f'affects_{user_type}')

    def set_affects(self, affects):
        for audience in HOLIDAY_AUDIENCES:
            if audience in affects:
                setattr(self, f'affects_{audience}', bool(affects[audience]))

    @classmethod
    def active_for(cls, user_type):
        return cls.query.filter(cls.is_active.is_(True), cls.audience_column(user_type).is_(True))

    @staticmethod
    def overlapping(query, start, end):
        """Holidays starting, ending or spanning across ``start``..``end``."""
        return query.filter(or_(
            and_(Holiday.date >= start, Holiday.date <= end),
            and_(Holiday.end_date >= start, Holiday.end_date <= end),
            and_(Holiday.date <= start, Holiday.end_date >= end),
        ))

    @classmethod
    def for_range(cls, start, end, user_type='students'):
        return cls.overlapping(cls.active_for(user_type), start, end).order_by(cls.date.asc()).all()

    @classmethod
    def upcoming(cls, days=30, user_type='students', today=None):
        today = today or date.today()
        return cls.for_range(today, today + timedelta(days=days), user_type)

    @classmethod
    def current_month(cls, user_type='students', today=None):
        today = today or date.today()
        start = today.replace(day=1)
        next_month = (start + timedelta(days=32)).replace(day=1)
        return cls.for_range(start, next_month - timedelta(days=1), user_type)

    @classmethod
    def on_date(cls, day, user_type='students'):
        holidays = cls.for_range(day, day, user_type)
        return holidays[0] if holidays else None

    def covers(self, day):
        return self.date <= day <= (self.end_date or self.date)

    @classmethod
    def working_days(cls, start, end, user_type='students'):
        """Weekdays between ``start`` and ``end`` inclusive that are not holidays."""
        holidays = cls.for_range(start, end, user_type)
        count = 0
        day = start
        while day <= end:
            if day.weekday() < 5 and not any(holiday.covers(day) for holiday in holidays):
                count += 1
            day += timedelta(days=1)
        return count

    def affects(self):
        return {audience: getattr(self, f'affects_{audience}') for audience in HOLIDAY_AUDIENCES}

    def summary(self):
        is_multi_day = bool(self.end_date and self.end_date > self.date)
        return {
            'title': self.title,
            'date': isoformat(self.date),
            'endDate': isoformat(self.end_date),
            'duration': (self.end_date - self.date).days + 1 if is_multi_day else 1,
            'type': self.type,
            'category': self.category,
            'affects': self.affects(),
            'isMultiDay': is_multi_day,
        }

    def to_dict(self):
        data = {
            'id': self.id,
            'title': self.title,
            'description': self.description,
            'date': isoformat(self.date),
            'endDate': isoformat(self.end_date),
            'type': self.type,
            'category': self.category,
            'affects': self.affects(),
            'academicYear': self.academic_year,
            'semester': self.semester,
            'isRecurring': self.is_recurring,
            'recurringPattern': self.recurring_pattern,
            'isActive': self.is_active,
            'tags': self.tags or [],
            'notifications': self.notifications,
            'createdBy': profile_brief(self.created_by),
            'updatedBy': profile_brief(self.updated_by),
        }
        data.update(self.timestamps())
        return data


MEALS = ('breakfast', 'lunch', 'dinner')

DEFAULT_MEAL_TIMINGS = {
    'breakfast': {'start': '07:00', 'end': '09:00'},
    'lunch': {'start': '12:00', 'end': '14:00'},
    'dinner': {'start': '19:00', 'end': '21:00'},
}


def normalize_meal(meal, data):
    """Fill in the empty item lists and the default serving window."""
    data = dict(data or {})
    for kind in ('veg', 'nonVeg'):
        section = dict(data.get(kind) or {})
        section.setdefault('items', [])
        data[kind] = section
    timing = dict(DEFAULT_MEAL_TIMINGS[meal])
    timing.update({key: value for key, value in (data.get('timing') or {}).items() if value})
    data['timing'] = timing
    return data


def _clock(value):
    hours, minutes = value.split(':')
    return int(hours) * 100 + int(minutes)


class MessMenu(BaseModel):
    __tablename__ = 'mess_menus'

    date = db.Column(db.Date, unique=True, nullable=False)
    breakfast = db.Column(db.JSON, nullable=False)
    lunch = db.Column(db.JSON, nullable=False)
    dinner = db.Column(db.JSON, nullable=False)
    snacks = db.Column(db.JSON, default=lambda: {'items': []})
    notes = db.Column(db.String(500))
    is_special_day = db.Column(db.Boolean, default=False, nullable=False)
    special_day_name = db.Column(db.String(100))
    academic_year = db.Column(db.String(20), nullable=False, index=True)
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    created_by_id = db.Column(db.String(24), db.ForeignKey('profiles.id'), nullable=False)
    updated_by_id = db.Column(db.String(24), db.ForeignKey('profiles.id'))

    created_by = db.relationship('Profile', foreign_keys=[created_by_id])
    updated_by = db.relationship('Profile', foreign_keys=[updated_by_id])

    EDITABLE = {
        'snacks': 'snacks',
        'notes': 'notes',
        'isSpecialDay': 'is_special_day',
        'specialDayName': 'special_day_name',
        'academicYear': 'academic_year',
        'isActive': 'is_active',
    }

    def set_meals(self, data):
        for meal in MEALS:
            if meal in data or getattr(self, meal) is None:
                setattr(self, meal, normalize_meal(meal, data.get(meal)))

    @classmethod
    def for_date(cls, day):
        return cls.query.filter_by(date=day, is_active=True).first()

    @classmethod
    def week(cls, start):
        return (cls.query
                .filter(cls.date >= start, cls.date < start + timedelta(days=7), cls.is_active.is_(True))
                .order_by(cls.date.asc())
                .all())

    def current_meal(self, now=None):
        now = now or datetime.now()
        current = now.hour * 100 + now.minute
        for meal in MEALS:
            timing = (getattr(self, meal) or {}).get('timing') or DEFAULT_MEAL_TIMINGS[meal]
            if _clock(timing['start']) <= current <= _clock(timing['end']):
                return meal
        return None

    def summary(self):
        data = {'date': isoformat(self.date)}
        for meal in MEALS:
            menu = getattr(self, meal) or {}
            data[meal] = {
                'veg': len((menu.get('veg') or {}).get('items', [])),
                'nonVeg': len((menu.get('nonVeg') or {}).get('items', [])),
            }
        data['snacks'] = len((self.snacks or {}).get('items', []))
        data['isSpecialDay'] = self.is_special_day
        data['specialDayName'] = self.special_day_name
        return data

    def to_dict(self):
        data = {
            'id': self.id,
            'date': isoformat(self.date),
            'breakfast': self.breakfast,
            'lunch': self.lunch,
            'dinner': self.dinner,
            'snacks': self.snacks or {'items': []},
            'notes': self.notes,
            'isSpecialDay': self.is_special_day,
            'specialDayName': self.special_day_name,
            'academicYear': self.academic_year,
            'isActive': self.is_active,
            'createdBy': profile_brief(self.created_by),
            'updatedBy': profile_brief(self.updated_by),
        }
        data.update(self.timestamps())
        return data
