from .students import router as students_router
from .payments import router as payments_router
from .admin import router as admin_router

__all__ = ['students_router', 'payments_router', 'admin_router']
