"""
CSV reporting module for PR landing time results.

This module exports per-PR landing records, with the run summary written as
comment lines above the header row.
"""

import csv
import logging
from datetime import datetime
from typing import Dict, List, Any, Optional
from pathlib import Path

from dateutil import tz
from dateutil.parser import isoparse


class CSVReportError(Exception):
    """Custom exception for CSV reporting related errors."""
    pass


class CSVReporter:
    """
    CSV reporter for PR landing time results.

    This class handles the formatting and export of per-PR landing records
    to CSV files with proper headers and data formatting.
    """

    def __init__(self, output_path: str):
        """
        Initialize CSV reporter with output file path.

        Args:
            output_path: Path where the CSV file will be written

        Raises:
            CSVReportError: If output path is invalid
        """
        if not output_path:
            raise CSVReportError("Output path is required")

        self.output_path = Path(output_path)
        self.logger = logging.getLogger(__name__)

        self.output_path.parent.mkdir(parents=True, exist_ok=True)

    def generate_report(self, landing_results: Dict[str, Any]) -> str:
        """
        Generate CSV report from landing time results.

        Args:
            landing_results: Dictionary with 'summary' and 'pr_details'

        Returns:
            Path to the generated CSV file

        Raises:
            CSVReportError: If report generation fails
        """
        self.validate_landing_results(landing_results)

        pr_details = landing_results['pr_details']
        summary = landing_results.get('summary', {})

        try:
            rows = self._format_csv_rows(pr_details)

            with open(self.output_path, 'w', newline='', encoding='utf-8') as csvfile:
                writer = csv.writer(csvfile)
                self._write_summary_header(writer, summary)
                writer.writerow(self._format_csv_headers())
                writer.writerows(rows)

            self.logger.info(f"Generated CSV report with {len(rows)} PRs at {self.output_path}")

            return str(self.output_path)

        except OSError as e:
            raise CSVReportError(f"Failed to generate CSV report: {e}")

    def _format_csv_headers(self) -> List[str]:
        return [
            'repository_name',
            'pr_number',
            'title',
            'author_login',
            'state',
            'created_at',
            'merged_at',
            'merged_by_login',
            'wall_hours',
            'workdays',
            'effective_hours',
            'is_merged'
        ]

    def _format_csv_rows(self, pr_details: List[Dict[str, Any]]) -> List[List[str]]:
        """
        Format landing records as CSV data rows.

        Args:
            pr_details: List of per-PR landing records

        Returns:
            List of CSV data rows
        """
        rows = []

        for pr in pr_details:
            workdays = pr.get('workdays')
            rows.append([
                str(pr.get('repository_name', '')),
                str(pr.get('pr_number', '')),
                self._sanitize_text(pr.get('title', '')),
                str(pr.get('author_login', '')),
                str(pr.get('state', '')),
                self._format_datetime(pr.get('created_at')),
                self._format_datetime(pr.get('merged_at')),
                str(pr.get('merged_by_login', '')),
                self._format_number(pr.get('wall_hours')),
                '' if workdays is None else str(workdays),
                self._format_number(pr.get('effective_hours')),
                str(pr.get('is_merged', False))
            ])

        return rows

    def _write_summary_header(self, writer: csv.writer, summary: Dict[str, Any]) -> None:
        if not summary:
            return

        writer.writerow([f"# GitHub PR Landing Time Report - Generated {datetime.now().isoformat()}"])

        username = summary.get('username', '')
        if username:
            writer.writerow([f"# Author: {username}"])

        writer.writerow([f"# Total PRs: {summary.get('total_prs', 0)}"])
        writer.writerow([f"# Matched PRs: {summary.get('matched_prs', 0)}"])
        writer.writerow([f"# Landed PRs Counted: {summary.get('total_merged_counted', 0)}"])

        average = summary.get('average_hours')
        if average is not None:
            writer.writerow([f"# Average Landing Time: {average:.2f} hours"])

        writer.writerow([])

    def _sanitize_text(self, text: str) -> str:
        """
        Sanitize text for CSV output by handling special characters.

        Args:
            text: Text to sanitize

        Returns:
            Sanitized text safe for CSV
        """
        if not text:
            return ""

        sanitized = ' '.join(str(text).split())

        # Truncate very long titles
        if len(sanitized) > 200:
            sanitized = sanitized[:197] + "..."

        return sanitized

    def _format_datetime(self, datetime_str: Optional[str]) -> str:
        if not datetime_str:
            return ""

        try:
            return isoparse(datetime_str).astimezone(tz.UTC).strftime('%Y-%m-%d %H:%M:%S UTC')
        except (ValueError, TypeError):
            return str(datetime_str)

    def _format_number(self, number: Optional[float]) -> str:
        if number is None:
            return ""

        try:
            return f"{float(number):.2f}"
        except (ValueError, TypeError):
            return ""

    def validate_landing_results(self, landing_results: Dict[str, Any]) -> bool:
        """
        Validate landing results structure for CSV generation.

        Args:
            landing_results: Results dictionary to validate

        Returns:
            True if results are valid for CSV generation

        Raises:
            CSVReportError: If validation fails
        """
        if not isinstance(landing_results, dict):
            raise CSVReportError("Landing results must be a dictionary")

        if 'pr_details' not in landing_results:
            raise CSVReportError("Landing results must contain 'pr_details'")

        pr_details = landing_results['pr_details']
        if not isinstance(pr_details, list):
            raise CSVReportError("'pr_details' must be a list")

        required_fields = ['repository_name', 'pr_number', 'author_login']
        for i, pr in enumerate(pr_details):
            if not isinstance(pr, dict):
                raise CSVReportError(f"PR detail at index {i} must be a dictionary")

            for field in required_fields:
                if field not in pr:
                    raise CSVReportError(f"PR detail at index {i} missing required field: {field}")

        return True
