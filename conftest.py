import pandas as pd
import pytest

from nihexporter.packages.exporter.table_store import SAMPLE_DATA_DIR
from nihexporter.packages.exporter.table_store import load


@pytest.fixture
def sample_store():
    """The small bundled sample of every table"""
    return load(SAMPLE_DATA_DIR)


def make_projects(rows):
    """Build a projects table from tuples of
    (project.num, institute, activity, fiscal.year, fy.cost[,
    project.start, project.end]), with one application.id per row."""
    records = []
    for i, row in enumerate(rows):
        start, end = (row[5], row[6]) if len(row) > 5 else (None, None)
        records.append({'project.num': row[0],
                        'application.id': 1000 + i,
                        'institute': row[1],
                        'activity': row[2],
                        'fiscal.year': row[3],
                        'fy.cost': row[4],
                        'project.start': pd.Timestamp(start),
                        'project.end': pd.Timestamp(end)})
    frame = pd.DataFrame(records)
    frame['fy.cost'] = frame['fy.cost'].astype(float)
    return frame


@pytest.fixture
def projects_factory():
    return make_projects
