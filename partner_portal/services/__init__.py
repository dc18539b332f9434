from .identity import CallerContext, resolve_caller
from .normalizer import EmailBatch, normalize_emails, parse_list, parse_tags, parse_csv
from .quota import TeamQuota, resolve_quota, ensure_capacity
from .allocation import AllocationResult, LicenseAllocator
