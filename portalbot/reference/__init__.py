"""Reference data snapshots (user directory, partner mappings)."""

from .directory import Partner, ReferenceData, load_caf_partner_codes, load_partner_mappings, load_user_directory

__all__ = ["Partner", "ReferenceData", "load_caf_partner_codes", "load_partner_mappings", "load_user_directory"]
