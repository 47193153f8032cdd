"""initial schema: scans, result records, analysis logs, cve cache

Revision ID: 0001_initial_schema
Revises:
Create Date: 2026-10-17 09:00:00

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "0001_initial_schema"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

ECU_TYPES = ("Engine", "Transmission", "BCM", "TCU", "ADAS", "Infotainment", "Gateway", "Other")
ARCHITECTURES = ("ARM", "PowerPC", "TriCore", "x86", "Unknown")
SCAN_STATUSES = ("queued", "parsing", "decompiling", "analyzing", "enriching", "complete", "failed")
SEVERITIES = ("critical", "high", "medium", "low", "info")
VULNERABILITY_STATUSES = ("new", "reopened", "fixed", "false_positive", "risk_accepted")
COMPLIANCE_STATUSES = ("pass", "fail", "warning")
LOG_LEVELS = ("info", "warning", "error")


def upgrade() -> None:
    op.create_table(
        "scans",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("ecu_name", sa.String(255), nullable=False),
        sa.Column("ecu_type", sa.Enum(*ECU_TYPES, name="ecu_type"), nullable=False),
        sa.Column("version", sa.String(100), nullable=True),
        sa.Column("manufacturer", sa.String(255), nullable=True),
        sa.Column("platform", sa.String(255), nullable=True),
        sa.Column("architecture", sa.Enum(*ARCHITECTURES, name="architecture"), nullable=False),
        sa.Column("file_name", sa.String(500), nullable=True),
        sa.Column("file_size", sa.Integer(), nullable=True),
        sa.Column("file_hash", sa.String(64), nullable=True),
        sa.Column("compliance_frameworks", sa.JSON(), nullable=False),
        sa.Column("deep_analysis", sa.Boolean(), nullable=False),
        sa.Column("metadata", sa.JSON(), nullable=False),
        sa.Column("status", sa.Enum(*SCAN_STATUSES, name="scan_status"), nullable=False),
        sa.Column("progress", sa.Integer(), nullable=False),
        sa.Column("risk_score", sa.Integer(), nullable=True),
        sa.Column("executive_summary", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_scans_ecu_name", "scans", ["ecu_name"])
    op.create_index("ix_scans_ecu_type", "scans", ["ecu_type"])
    op.create_index("ix_scans_status", "scans", ["status"])
    op.create_index("ix_scans_created_at", "scans", ["created_at"])

    op.create_table(
        "vulnerabilities",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("scan_id", sa.String(36), sa.ForeignKey("scans.id", ondelete="CASCADE"), nullable=False),
        sa.Column("severity", sa.Enum(*SEVERITIES, name="severity_level"), nullable=False),
        sa.Column("cwe_id", sa.String(50), nullable=True),
        sa.Column("cve_id", sa.String(50), nullable=True),
        sa.Column("cvss_score", sa.Float(), nullable=True),
        sa.Column("title", sa.String(500), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("affected_component", sa.String(500), nullable=True),
        sa.Column("affected_function", sa.String(255), nullable=True),
        sa.Column("code_snippet", sa.Text(), nullable=True),
        sa.Column("line_number", sa.Integer(), nullable=True),
        sa.Column("detection_method", sa.String(100), nullable=True),
        sa.Column("remediation", sa.Text(), nullable=True),
        sa.Column("attack_vector", sa.String(255), nullable=True),
        sa.Column("impact", sa.Text(), nullable=True),
        sa.Column("llm_enrichment", sa.JSON(), nullable=True),
        sa.Column("status", sa.Enum(*VULNERABILITY_STATUSES, name="vulnerability_status"), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_vulnerabilities_id", "vulnerabilities", ["id"])
    op.create_index("ix_vulnerabilities_scan_id", "vulnerabilities", ["scan_id"])
    op.create_index("ix_vulnerabilities_severity", "vulnerabilities", ["severity"])
    op.create_index("ix_vulnerabilities_cwe_id", "vulnerabilities", ["cwe_id"])
    op.create_index("ix_vulnerabilities_cve_id", "vulnerabilities", ["cve_id"])
    op.create_index("ix_vulnerabilities_status", "vulnerabilities", ["status"])
    op.create_index("ix_vulnerabilities_created_at", "vulnerabilities", ["created_at"])

    op.create_table(
        "compliance_results",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("scan_id", sa.String(36), sa.ForeignKey("scans.id", ondelete="CASCADE"), nullable=False),
        sa.Column("framework", sa.String(255), nullable=False),
        sa.Column("rule_id", sa.String(100), nullable=False),
        sa.Column("rule_description", sa.Text(), nullable=True),
        sa.Column("status", sa.Enum(*COMPLIANCE_STATUSES, name="compliance_status"), nullable=False),
        sa.Column("details", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_compliance_results_id", "compliance_results", ["id"])
    op.create_index("ix_compliance_results_scan_id", "compliance_results", ["scan_id"])
    op.create_index("ix_compliance_results_framework", "compliance_results", ["framework"])
    op.create_index("ix_compliance_results_created_at", "compliance_results", ["created_at"])

    op.create_table(
        "sbom_components",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("scan_id", sa.String(36), sa.ForeignKey("scans.id", ondelete="CASCADE"), nullable=False),
        sa.Column("component_name", sa.String(255), nullable=False),
        sa.Column("version", sa.String(100), nullable=True),
        sa.Column("license", sa.String(100), nullable=True),
        sa.Column("source_file", sa.String(500), nullable=True),
        sa.Column("vulnerabilities", sa.JSON(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_sbom_components_id", "sbom_components", ["id"])
    op.create_index("ix_sbom_components_scan_id", "sbom_components", ["scan_id"])
    op.create_index("ix_sbom_components_component_name", "sbom_components", ["component_name"])

    op.create_table(
        "analysis_logs",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("scan_id", sa.String(36), sa.ForeignKey("scans.id", ondelete="CASCADE"), nullable=False),
        sa.Column("stage", sa.String(50), nullable=False),
        sa.Column("log_level", sa.Enum(*LOG_LEVELS, name="log_level"), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_analysis_logs_id", "analysis_logs", ["id"])
    op.create_index("ix_analysis_logs_scan_id", "analysis_logs", ["scan_id"])
    op.create_index("ix_analysis_logs_created_at", "analysis_logs", ["created_at"])

    op.create_table(
        "cve_cache",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("cve_id", sa.String(50), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("cvss_score", sa.Float(), nullable=True),
        sa.Column("severity", sa.String(20), nullable=True),
        sa.Column("cwe_ids", sa.JSON(), nullable=False),
        sa.Column("published_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("modified_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("reference_links", sa.JSON(), nullable=False),
        sa.Column("affected_products", sa.JSON(), nullable=False),
        sa.Column("fetched_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_cve_cache_id", "cve_cache", ["id"])
    op.create_index("ix_cve_cache_cve_id", "cve_cache", ["cve_id"], unique=True)


def downgrade() -> None:
    op.drop_table("cve_cache")
    op.drop_table("analysis_logs")
    op.drop_table("sbom_components")
    op.drop_table("compliance_results")
    op.drop_table("vulnerabilities")
    op.drop_table("scans")
    bind = op.get_bind()
    for enum_name in (
        "log_level", "compliance_status", "vulnerability_status",
        "severity_level", "scan_status", "architecture", "ecu_type",
    ):
        sa.Enum(name=enum_name).drop(bind, checkfirst=True)
