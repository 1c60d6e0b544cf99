# KYC module
from tradevault.modules.kyc.models import KYCRecord, KYCStatus, IDType

__all__ = ["KYCRecord", "KYCStatus", "IDType"]
