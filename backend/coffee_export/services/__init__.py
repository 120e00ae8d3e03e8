# Services module

from coffee_export.services.repository import (
    SqlRepository,
    DuplicateRecordError,
    CoffeeProductRepository,
    BusinessServiceRepository,
    ClientCompanyRepository,
    RFQRepository,
    OrderRepository,
)
from coffee_export.services.notifications import (
    NotificationDispatcher,
    NotificationResult,
    LoggingNotifier,
    RecordingNotifier,
    default_dispatcher,
)
from coffee_export.services.workflow import TransitionResult
from coffee_export.services.rfq_workflow import RFQWorkflowService
from coffee_export.services.order_fulfillment import OrderFulfillmentService
from coffee_export.services.relationship_service import (
    RelationshipService,
    RelationshipSummary,
    build_trading_history,
    suggest_relationship_status,
)
