from __future__ import annotations

from sqlalchemy import Boolean, Column, Float, Integer, String, Text, UniqueConstraint

from db import Base


class User(Base):
    __tablename__ = "users"

    userId = Column(String, primary_key=True)
    email = Column(String, nullable=False, unique=True, index=True)
    name = Column(Text, nullable=False, default="")
    image = Column(Text, nullable=False, default="")
    role = Column(String, nullable=False, default="STUDENT", index=True)
    status = Column(String, nullable=False, default="ACTIVE", index=True)
    createdAt = Column(Text, nullable=False, default="")
    updatedAt = Column(Text, nullable=False, default="")


class Profile(Base):
    __tablename__ = "profiles"

    userId = Column(String, primary_key=True)
    firstName = Column(Text, nullable=False, default="")
    lastName = Column(Text, nullable=False, default="")
    usn = Column(String, nullable=False, default="", index=True)
    branch = Column(String, nullable=False, default="")
    # "2021-2025"; eligibility compares the terminal year only.
    batch = Column(String, nullable=False, default="")
    cgpa = Column(Float, nullable=True)
    finalCgpa = Column(Float, nullable=True)
    activeBacklogs = Column(Boolean, nullable=False, default=False)
    hasBacklogs = Column(String, nullable=False, default="")
    kycStatus = Column(String, nullable=False, default="PENDING", index=True)
    highestPlacementTier = Column(String, nullable=True)
    placedAt = Column(Text, nullable=False, default="")
    profilePhoto = Column(Text, nullable=False, default="")
    callingMobile = Column(String, nullable=False, default="")
    fatherMobile = Column(String, nullable=False, default="")
    motherMobile = Column(String, nullable=False, default="")
    updatedAt = Column(Text, nullable=False, default="")


class Job(Base):
    __tablename__ = "jobs"

    jobId = Column(String, primary_key=True)
    title = Column(Text, nullable=False, default="")
    companyName = Column(Text, nullable=False, default="")
    tier = Column(String, nullable=False, default="TIER_3", index=True)
    isDreamOffer = Column(Boolean, nullable=False, default=False)
    minCgpa = Column(Float, nullable=True)
    allowedBranchesJson = Column(Text, nullable=False, default="[]")
    eligibleBatch = Column(String, nullable=False, default="")
    maxBacklogs = Column(Integer, nullable=True)
    salary = Column(Float, nullable=True)
    minSalary = Column(Float, nullable=True)
    maxSalary = Column(Float, nullable=True)
    status = Column(String, nullable=False, default="ACTIVE", index=True)
    createdAt = Column(Text, nullable=False, default="")
    updatedAt = Column(Text, nullable=False, default="")


class Application(Base):
    __tablename__ = "applications"
    __table_args__ = (UniqueConstraint("jobId", "userId", name="uq_applications_job_user"),)

    applicationId = Column(String, primary_key=True)
    jobId = Column(String, nullable=False, index=True)
    userId = Column(String, nullable=False, index=True)
    isRemoved = Column(Boolean, nullable=False, default=False)
    createdAt = Column(Text, nullable=False, default="")


class JobRound(Base):
    __tablename__ = "job_rounds"

    roundId = Column(String, primary_key=True)
    jobId = Column(String, nullable=False, index=True)
    name = Column(Text, nullable=False, default="")
    order = Column(Integer, nullable=False, default=1)
    isRemoved = Column(Boolean, nullable=False, default=False)
    createdAt = Column(Text, nullable=False, default="")
    updatedAt = Column(Text, nullable=False, default="")
    updatedBy = Column(String, nullable=False, default="")


class DriveSession(Base):
    __tablename__ = "drive_sessions"

    sessionId = Column(String, primary_key=True)
    jobId = Column(String, nullable=False, index=True)
    roundId = Column(String, nullable=False, index=True)
    status = Column(String, nullable=False, default="ACTIVE", index=True)
    startTime = Column(Text, nullable=False, default="")
    endTime = Column(Text, nullable=False, default="")
    createdAt = Column(Text, nullable=False, default="", index=True)
    createdBy = Column(String, nullable=False, default="")
    updatedAt = Column(Text, nullable=False, default="")
    updatedBy = Column(String, nullable=False, default="")


class RoundAttendance(Base):
    __tablename__ = "round_attendance"
    __table_args__ = (UniqueConstraint("userId", "roundId", name="uq_round_attendance_user_round"),)

    attendanceId = Column(String, primary_key=True)
    userId = Column(String, nullable=False, index=True)
    jobId = Column(String, nullable=False, index=True)
    roundId = Column(String, nullable=False, index=True)
    sessionId = Column(String, nullable=False, default="")
    status = Column(String, nullable=False, default="ATTENDED", index=True)
    markedAt = Column(Text, nullable=False, default="", index=True)
    markedBy = Column(String, nullable=False, default="")
    location = Column(Text, nullable=False, default="")
    updatedAt = Column(Text, nullable=False, default="")
    updatedBy = Column(String, nullable=False, default="")


class FinalSelected(Base):
    __tablename__ = "final_selected"
    __table_args__ = (UniqueConstraint("userId", "jobId", name="uq_final_selected_user_job"),)

    selectionId = Column(String, primary_key=True)
    userId = Column(String, nullable=False, index=True)
    jobId = Column(String, nullable=False, index=True)
    usn = Column(String, nullable=False, default="")
    year = Column(String, nullable=False, default="", index=True)
    tier = Column(String, nullable=False, default="TIER_3")
    package = Column(Float, nullable=True)
    role = Column(Text, nullable=False, default="")
    isManual = Column(Boolean, nullable=False, default=False)
    selectedAt = Column(Text, nullable=False, default="", index=True)
    updatedAt = Column(Text, nullable=False, default="")
    updatedBy = Column(String, nullable=False, default="")


class Placement(Base):
    __tablename__ = "placements"
    __table_args__ = (UniqueConstraint("userId", "jobId", name="uq_placements_user_job"),)

    placementId = Column(String, primary_key=True)
    userId = Column(String, nullable=False, index=True)
    jobId = Column(String, nullable=False, index=True)
    tier = Column(String, nullable=False, default="TIER_3")
    salary = Column(Float, nullable=False, default=0)
    companyName = Column(Text, nullable=False, default="")
    createdAt = Column(Text, nullable=False, default="")
    updatedAt = Column(Text, nullable=False, default="")


class Attendance(Base):
    """Pre-round attendance stubs keyed by application id (legacy QR codes)."""

    __tablename__ = "attendance_legacy"

    attendanceId = Column(String, primary_key=True)
    studentId = Column(String, nullable=False, index=True)
    jobId = Column(String, nullable=False, default="", index=True)
    qrCode = Column(String, nullable=False, unique=True, index=True)
    scannedAt = Column(Text, nullable=False, default="")
    scannedBy = Column(String, nullable=False, default="")
    location = Column(Text, nullable=False, default="")
    createdAt = Column(Text, nullable=False, default="")


class AuditLog(Base):
    __tablename__ = "audit_log"

    logId = Column(String, primary_key=True)
    entityType = Column(String, nullable=False, default="", index=True)
    entityId = Column(String, nullable=False, default="", index=True)
    action = Column(String, nullable=False, default="", index=True)
    fromState = Column(String, nullable=False, default="")
    toState = Column(String, nullable=False, default="")
    remark = Column(Text, nullable=False, default="")
    actorUserId = Column(String, nullable=False, default="", index=True)
    actorRole = Column(String, nullable=False, default="", index=True)
    at = Column(Text, nullable=False, default="", index=True)
    metaJson = Column(Text, nullable=False, default="")
