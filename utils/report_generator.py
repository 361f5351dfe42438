# utils/report_generator.py

import html
import logging
from datetime import datetime
from pathlib import Path
from typing import List

from core.models import DuplicateGroup
from utils.file_utils import format_file_size

logger = logging.getLogger(__name__)


def _file_size(path: str) -> int:
    try:
        return Path(path).stat().st_size
    except OSError:
        return 0


class DuplicateReportGenerator:
    """
    Generate reports for duplicate detection results
    """

    def generate_report(self,
                       groups: List[DuplicateGroup],
                       output_path: str = "duplicate_report.html") -> str:
        """
        Generate HTML report with duplicate groups
        """
        html_content = self._create_html_template()

        total_duplicates = sum(len(group.members) for group in groups)
        space_savings = self._calculate_space_savings(groups)

        # Add statistics
        stats_html = f"""
        <div class="statistics">
            <h2>Duplicate Detection Summary</h2>
            <p><strong>Total duplicate groups:</strong> {len(groups)}</p>
            <p><strong>Total duplicate files:</strong> {total_duplicates}</p>
            <p><strong>Potential space savings:</strong> {format_file_size(space_savings)}</p>
            <p><strong>Generated:</strong> {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}</p>
        </div>
        """

        # Add duplicate groups
        groups_html = "<div class='duplicate-groups'>"

        for idx, group in enumerate(groups):
            groups_html += self._create_group_html(idx, group)

        groups_html += "</div>"

        # Combine and save
        final_html = html_content.replace("{{STATS}}", stats_html)
        final_html = final_html.replace("{{GROUPS}}", groups_html)

        Path(output_path).write_text(final_html, encoding='utf-8')

        logger.info(f"Report generated: {output_path}")
        return output_path

    def _calculate_space_savings(self, groups: List[DuplicateGroup]) -> int:
        """Calculate potential space savings from removing duplicates"""
        return sum(_file_size(path) for group in groups for path in group.members)

    def _create_group_html(self, idx: int, group: DuplicateGroup) -> str:
        """Create HTML for a duplicate group"""
        rep = group.representative
        group_html = f"""
        <div class="duplicate-group">
            <h3>Group {idx + 1}</h3>
            <div class="representative">
                <h4>Keep (Representative)</h4>
                <img src="{html.escape(Path(rep).absolute().as_uri())}" />
                <p>{html.escape(Path(rep).name)}</p>
                <p class="file-info">Size: {format_file_size(_file_size(rep))}</p>
            </div>
            <div class="duplicates-list">
                <h4>Duplicates ({len(group.members)}) - Consider Deleting</h4>
        """

        for dup_path in group.members:
            similarity = group.scores.get(dup_path, 0.0)
            group_html += f"""
                <div class="duplicate-item">
                    <img src="{html.escape(Path(dup_path).absolute().as_uri())}" />
                    <p>{html.escape(Path(dup_path).name)}</p>
                    <p class="file-info">Size: {format_file_size(_file_size(dup_path))}</p>
                    <p class="file-info">Similarity: {similarity:.4f}</p>
                </div>
            """

        group_html += """
            </div>
        </div>
        """

        return group_html

    def _create_html_template(self) -> str:
        """HTML template for report"""
        return """
        <!DOCTYPE html>
        <html>
        <head>
            <meta charset="utf-8">
            <title>Duplicate Detection Report</title>
            <style>
                body { font-family: Arial, sans-serif; margin: 20px; }
                .statistics { background: #f0f0f0; padding: 20px; border-radius: 5px; }
                .duplicate-group { border: 1px solid #ccc; margin: 20px 0; padding: 15px; }
                .representative { background: #e8f5e9; padding: 10px; }
                .duplicates-list { display: grid; grid-template-columns: repeat(auto-fill, minmax(200px, 1fr)); gap: 10px; margin-top: 10px; }
                .duplicate-item { border: 1px solid #ddd; padding: 10px; text-align: center; }
                img { max-width: 100%; height: auto; max-height: 200px; object-fit: contain; }
                .file-info { font-size: 0.9em; color: #666; }
            </style>
        </head>
        <body>
            <h1>Image Duplicate Detection Report</h1>
            {{STATS}}
            {{GROUPS}}
        </body>
        </html>
        """
