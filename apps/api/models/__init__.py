"""Models package."""

from .user import User
from .account import Account, AccountMember
from .brand_context import BrandContext, ProductLine
from .asset import Asset, AssetProductLine
from .transcription import TranscriptionJob, TranscriptSegment
from .login_code import LoginCode
