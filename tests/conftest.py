import csv
from pathlib import Path

import pytest

from src.engine.loader import CampaignDataset
from src.utils.schemas import REQUIRED_DATASET_COLUMNS, CampaignRecord

ROOT = Path(__file__).resolve().parents[1]

BASE_ROW = {
    "campaign_id": 1,
    "company": "Acme",
    "campaign_type": "Email",
    "target_audience": "Men 18-24",
    "duration": "30 days",
    "channel_used": "Email",
    "conversion_rate": "0.10",
    "acquisition_cost": "$1,000.00",
    "roi": "2.00",
    "location": "Chicago",
    "date": "01/01/2021",
    "clicks": 10,
    "impressions": 100,
    "engagement_score": 5,
    "customer_segment": "Foodies",
}


def build_rows(rows):
    """Fill every row from BASE_ROW; campaign ids default to 1..n."""
    return [{**BASE_ROW, "campaign_id": i + 1, **row} for i, row in enumerate(rows)]


@pytest.fixture
def make_dataset():
    def _make(rows):
        records = [CampaignRecord.model_validate(r) for r in build_rows(rows)]
        return CampaignDataset.from_records(records)
    return _make


@pytest.fixture
def write_csv(tmp_path):
    def _write(rows, header=None, name="campaigns.csv", fill=True):
        header = header or REQUIRED_DATASET_COLUMNS
        path = tmp_path / name
        rows = build_rows(rows) if fill else rows
        with open(path, "w", newline="", encoding="utf-8") as f:
            writer = csv.writer(f)
            writer.writerow(header)
            for row in rows:
                writer.writerow([row.get(col, "") for col in header])
        return str(path)
    return _write


@pytest.fixture
def campaign_rows():
    """Four campaigns with hand-computable totals."""
    return [
        {"company": "A", "campaign_type": "Email", "channel_used": "Email", "location": "Chicago",
         "impressions": 100, "clicks": 10, "conversion_rate": "0.1", "acquisition_cost": "$1,000.00",
         "roi": "2.0", "engagement_score": 5, "date": "01/01/2021",
         "target_audience": "Men 18-24", "customer_segment": "Foodies"},
        {"company": "B", "campaign_type": "Email", "channel_used": "Email", "location": "Miami",
         "impressions": 300, "clicks": 30, "conversion_rate": "0.2", "acquisition_cost": "$2,000.00",
         "roi": "6.0", "engagement_score": 9, "date": "15/01/2021",
         "target_audience": "Women 25-34", "customer_segment": "Foodies"},
        {"company": "B", "campaign_type": "Search", "channel_used": "YouTube", "location": "Chicago",
         "impressions": 0, "clicks": 0, "conversion_rate": "0.1", "acquisition_cost": "$500.00",
         "roi": "1.0", "engagement_score": 2, "date": "03/02/2021",
         "target_audience": "Men 18-24", "customer_segment": "Tech Enthusiasts"},
        {"company": "C", "campaign_type": "Search", "channel_used": "YouTube", "location": "Houston",
         "impressions": 200, "clicks": 40, "conversion_rate": "0.05", "acquisition_cost": "$400.00",
         "roi": "4.0", "engagement_score": 7, "date": "20/02/2021",
         "target_audience": "Women 25-34", "customer_segment": "Tech Enthusiasts"},
    ]


@pytest.fixture
def campaigns(make_dataset, campaign_rows):
    return make_dataset(campaign_rows)
