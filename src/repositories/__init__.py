from .unit_of_work import UnitOfWork
from .inspection_repository import InspectionRepository
from .photo_repository import PhotoRepository
from .company_repository import CompanyRepository
from .job_repository import JobRepository
