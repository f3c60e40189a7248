# Facility Visitor Management System - App Package
"""
Main application package for the Facility Visitor Management System.
This package contains the visitor lifecycle and training compliance core
plus the Flask API blueprint that exposes it.
"""

from dataclasses import dataclass
from typing import Optional

__version__ = "2.1.0"
__author__ = "Visitor Management Team"
__description__ = "Kiosk check-in/check-out with contractor training compliance tracking"

# Import core components for easy access
from .modules.database_manager import DatabaseManager
from .modules.settings import CoreSettings
from .modules.identity_resolver import IdentityResolver
from .modules.visit_tracker import VisitStateTracker
from .modules.training_compliance import TrainingComplianceCalculator
from .modules.search_ranker import SearchRanker
from .modules.import_reconciler import BulkImportReconciler
from .modules.retention_purger import RetentionPurger
from .modules.checkin_service import CheckInService
from .modules.report_generator import ReportGenerator


@dataclass
class VisitorSystem:
    """All managers of one running system, sharing a database and settings."""
    settings: CoreSettings
    db_manager: DatabaseManager
    identity_resolver: IdentityResolver
    visit_tracker: VisitStateTracker
    compliance_calculator: TrainingComplianceCalculator
    search_ranker: SearchRanker
    import_reconciler: BulkImportReconciler
    retention_purger: RetentionPurger
    checkin_service: CheckInService
    report_generator: ReportGenerator


def build_system(settings: CoreSettings, exports_folder: Optional[str] = None) -> VisitorSystem:
    """Construct every manager from one settings object."""
    db_manager = DatabaseManager(settings.database_path)
    identity_resolver = IdentityResolver(db_manager, settings)
    visit_tracker = VisitStateTracker(db_manager, identity_resolver, settings)
    compliance_calculator = TrainingComplianceCalculator(db_manager, identity_resolver, settings)

    return VisitorSystem(
        settings=settings,
        db_manager=db_manager,
        identity_resolver=identity_resolver,
        visit_tracker=visit_tracker,
        compliance_calculator=compliance_calculator,
        search_ranker=SearchRanker(db_manager, settings),
        import_reconciler=BulkImportReconciler(db_manager, identity_resolver, compliance_calculator, settings),
        retention_purger=RetentionPurger(db_manager, visit_tracker, settings),
        checkin_service=CheckInService(identity_resolver, compliance_calculator, visit_tracker, settings),
        report_generator=ReportGenerator(visit_tracker, settings, exports_folder)
    )


__all__ = [
    'DatabaseManager',
    'CoreSettings',
    'IdentityResolver',
    'VisitStateTracker',
    'TrainingComplianceCalculator',
    'SearchRanker',
    'BulkImportReconciler',
    'RetentionPurger',
    'CheckInService',
    'ReportGenerator',
    'VisitorSystem',
    'build_system'
]
