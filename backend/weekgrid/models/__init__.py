from weekgrid.models.timetable_state import TimetableState

__all__ = ["TimetableState"]
