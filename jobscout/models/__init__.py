"""Database models"""
from jobscout.models.job import Job, JobStatus
from jobscout.models.profile import Profile
from jobscout.models.discovery_run import DiscoveryRun, RunStatus

__all__ = [
    "Job",
    "JobStatus",
    "Profile",
    "DiscoveryRun",
    "RunStatus",
]
