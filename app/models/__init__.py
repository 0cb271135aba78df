from app.models.activity import (  # noqa: F401
    AttendanceStatus,
    SessionType,
    TLAttendanceRecord,
    TLDailyActivity,
    TLSession,
    TLTrainingParticipation,
)
from app.models.dataset import (  # noqa: F401
    AppleLogin,
    ApplePoint,
    DashboardDataset,
    DatasetStatus,
    DatasetType,
    MyHeroPoint,
    Prospect,
    QuizResult,
    SalesFLP,
)
from app.models.evaluation import Evaluation, EvaluationDetail, EvaluationPeriod  # noqa: F401
from app.models.kpi import InputSource, KPIItem, MetricKey, PersonKPITarget, Pillar  # noqa: F401
from app.models.person import Person, PersonRole  # noqa: F401
