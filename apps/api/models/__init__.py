"""Models package."""

from .user import User
from .creator import Creator, CreatorUrl
from .lounge import Lounge, CreatorLounge
from .content import Content, ContentLoungeScore
from .deleted_content import DeletedContent
from .relevancy_correction import RelevancyCorrection
from .prompt_adjustment import PromptAdjustment
from .relevancy_analysis_run import RelevancyAnalysisRun
from .brightdata_snapshot import BrightDataSnapshot
from .digest_subscription import LoungeDigestSubscription
