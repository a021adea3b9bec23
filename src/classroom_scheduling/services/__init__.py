from .attendance_service import AttendanceService, NotEnrolledError
from .directory_service import DirectoryService, DuplicateUserError, StudentAlreadyEnrolledError
from .schedule_service import ScheduleService

__all__ = [
	"AttendanceService",
	"DirectoryService",
	"DuplicateUserError",
	"NotEnrolledError",
	"ScheduleService",
	"StudentAlreadyEnrolledError",
]
