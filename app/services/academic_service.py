import logging
from typing import Dict, List, Optional, Tuple

from app.core.errors import AppError
from app.models.academics import AcademicYear, Class, Semester
from app.models.exams import Grade, ReportCard
from app.models.finance import FeeCategory
from app.services.base import BaseService, PageParams
from app.services.cache_service import CacheKeys
from app.utils.dates import today

logger = logging.getLogger(__name__)


class AcademicYearService(BaseService):
    model = AcademicYear
    entity_name = "Academic year"
    sort_fields = {
        "name": AcademicYear.name,
        "start_date": AcademicYear.start_date,
        "created_at": AcademicYear.created_at,
    }

    def create(self, data: Dict) -> AcademicYear:
        if data["end_date"] <= data["start_date"]:
            raise AppError("End date must be after start date", 400)
        if self.exists(AcademicYear, AcademicYear.name == data["name"]):
            raise AppError("Academic year with this name already exists", 409)
        year = AcademicYear(alt_id=self.next_alt_id(), **data)
        self.db.add(year)
        self.db.commit()
        self.db.refresh(year)
        self.invalidate(f"{CacheKeys.ACADEMIC_YEARS}*")
        return year

    def list(self, params: PageParams, is_active: Optional[bool] = None) -> Tuple[List[AcademicYear], Dict]:
        query = self.db.query(AcademicYear)
        if is_active is not None:
            query = query.filter(AcademicYear.is_active.is_(is_active))
        return self.paginate(query, params, default_sort=AcademicYear.start_date)

    def get_current(self) -> AcademicYear:
        on = today()
        year = (
            self.db.query(AcademicYear)
            .filter(
                AcademicYear.is_active.is_(True),
                AcademicYear.start_date <= on,
                AcademicYear.end_date >= on,
            )
            .order_by(AcademicYear.start_date.desc())
            .first()
        )
        if year is None:
            year = (
                self.db.query(AcademicYear)
                .filter(AcademicYear.is_active.is_(True))
                .order_by(AcademicYear.start_date.desc())
                .first()
            )
        if year is None:
            raise AppError("No active academic year found", 404)
        return year

    def update(self, year_id: str, data: Dict) -> AcademicYear:
        year = self.get_or_404(year_id)
        start = data.get("start_date") or year.start_date
        end = data.get("end_date") or year.end_date
        if end <= start:
            raise AppError("End date must be after start date", 400)
        if data.get("name") and data["name"] != year.name:
            if self.exists(AcademicYear, AcademicYear.name == data["name"], AcademicYear.id != year.id):
                raise AppError("Academic year with this name already exists", 409)
        self.apply_updates(year, data)
        self.db.commit()
        self.db.refresh(year)
        self.invalidate(f"{CacheKeys.ACADEMIC_YEARS}*")
        return year

    def activate(self, year_id: str) -> AcademicYear:
        """Make one academic year the only active one."""
        year = self.get_or_404(year_id)
        with self.transaction():
            self.db.query(AcademicYear).filter(AcademicYear.id != year.id).update(
                {"is_active": False}, synchronize_session=False
            )
            year.is_active = True
        self.db.refresh(year)
        self.invalidate(f"{CacheKeys.ACADEMIC_YEARS}*")
        return year

    def delete(self, year_id: str) -> None:
        year = self.get_or_404(year_id)
        if self.exists(Class, Class.academic_year_id == year.id):
            raise AppError("Cannot delete academic year with existing classes", 409)
        if self.exists(Semester, Semester.academic_year_id == year.id):
            raise AppError("Cannot delete academic year with existing semesters", 409)
        if self.exists(FeeCategory, FeeCategory.academic_year_id == year.id):
            raise AppError("Cannot delete academic year with existing fee categories", 409)
        self.db.delete(year)
        self.db.commit()
        self.invalidate(f"{CacheKeys.ACADEMIC_YEARS}*")


class SemesterService(BaseService):
    model = Semester
    entity_name = "Semester"
    sort_fields = {
        "name": Semester.name,
        "start_date": Semester.start_date,
        "created_at": Semester.created_at,
    }

    def _check_dates(self, year: AcademicYear, start, end) -> None:
        if end <= start:
            raise AppError("End date must be after start date", 400)
        if start < year.start_date or end > year.end_date:
            raise AppError("Semester dates must fall within the academic year", 400)

    def create(self, data: Dict) -> Semester:
        year = self.get_or_404(data["academic_year_id"], model=AcademicYear, name="Academic year")
        self._check_dates(year, data["start_date"], data["end_date"])
        if self.exists(Semester, Semester.academic_year_id == year.id, Semester.name == data["name"]):
            raise AppError("Semester with this name already exists for the academic year", 409)
        semester = Semester(alt_id=self.next_alt_id(), **data)
        self.db.add(semester)
        self.db.commit()
        self.db.refresh(semester)
        return semester

    def list(
        self,
        params: PageParams,
        academic_year_id: Optional[str] = None,
        is_active: Optional[bool] = None,
    ) -> Tuple[List[Semester], Dict]:
        query = self.db.query(Semester)
        if academic_year_id:
            year = self.get_or_404(academic_year_id, model=AcademicYear, name="Academic year")
            query = query.filter(Semester.academic_year_id == year.id)
        if is_active is not None:
            query = query.filter(Semester.is_active.is_(is_active))
        return self.paginate(query, params, default_sort=Semester.start_date)

    def get_active(self) -> Semester:
        on = today()
        semester = (
            self.db.query(Semester)
            .filter(Semester.is_active.is_(True), Semester.start_date <= on, Semester.end_date >= on)
            .order_by(Semester.start_date.desc())
            .first()
        )
        if semester is None:
            raise AppError("No active semester found", 404)
        return semester

    def update(self, semester_id: str, data: Dict) -> Semester:
        semester = self.get_or_404(semester_id)
        start = data.get("start_date") or semester.start_date
        end = data.get("end_date") or semester.end_date
        self._check_dates(semester.academic_year, start, end)
        if data.get("name") and data["name"] != semester.name:
            if self.exists(
                Semester,
                Semester.academic_year_id == semester.academic_year_id,
                Semester.name == data["name"],
                Semester.id != semester.id,
            ):
                raise AppError("Semester with this name already exists for the academic year", 409)
        self.apply_updates(semester, data)
        self.db.commit()
        self.db.refresh(semester)
        return semester

    def delete(self, semester_id: str) -> None:
        semester = self.get_or_404(semester_id)
        if self.exists(Grade, Grade.semester_id == semester.id):
            raise AppError("Cannot delete semester with recorded grades", 409)
        if self.exists(ReportCard, ReportCard.semester_id == semester.id):
            raise AppError("Cannot delete semester with report cards", 409)
        self.db.delete(semester)
        self.db.commit()
