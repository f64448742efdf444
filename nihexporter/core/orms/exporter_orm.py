'''
NIH EXPORTER schema
===================

The schema for the cleaned NIH EXPORTER tables. Column names are the
dotted names used throughout the analyses (e.g. :code:`project.num`),
so that the database, the CSV files and the in-memory tables all
share one naming convention.
'''

from sqlalchemy.orm import declarative_base
from sqlalchemy.types import INTEGER, FLOAT, DATE, VARCHAR
from sqlalchemy import Column


Base = declarative_base()


class Projects(Base):
    """One row per project per fiscal year in which it was funded."""
    __tablename__ = 'projects'

    project_num = Column('project.num', VARCHAR(50), index=True)
    application_id = Column('application.id', INTEGER, primary_key=True,
                            autoincrement=False)
    institute = Column(VARCHAR(2), index=True)
    activity = Column(VARCHAR(3), index=True)
    fiscal_year = Column('fiscal.year', INTEGER, index=True)
    fy_cost = Column('fy.cost', FLOAT, nullable=True)
    project_start = Column('project.start', DATE)
    project_end = Column('project.end', DATE)


class OrgInfo(Base):
    __tablename__ = 'org_info'

    org_duns = Column('org.duns', VARCHAR(9), primary_key=True)
    org_name = Column('org.name', VARCHAR(200), index=True)
    org_city = Column('org.city', VARCHAR(50))
    org_state = Column('org.state', VARCHAR(2), index=True)


class ProjectOrgs(Base):
    __tablename__ = 'project_orgs'

    application_id = Column('application.id', INTEGER, primary_key=True,
                            autoincrement=False)
    org_duns = Column('org.duns', VARCHAR(9), primary_key=True)


class ProjectPIs(Base):
    __tablename__ = 'project_pis'

    project_num = Column('project.num', VARCHAR(50), primary_key=True)
    pi_id = Column('pi.id', VARCHAR(20), primary_key=True)


class PubLinks(Base):
    __tablename__ = 'publinks'

    project_num = Column('project.num', VARCHAR(50), primary_key=True)
    pmid = Column(INTEGER, primary_key=True, autoincrement=False)


class Publications(Base):
    """Publication metrics, keyed by PubMed id. The Relative Citation
    Ratio (RCR) and related fields are as reported by iCite."""
    __tablename__ = 'publications'

    pmid = Column(INTEGER, primary_key=True, autoincrement=False)
    pub_year = Column('pub.year', INTEGER, index=True)
    rcr = Column(FLOAT)
    citation_count = Column('citation.count', INTEGER)
    citations_per_year = Column('citations.per.year', FLOAT)
    nih_percentile = Column('nih.percentile', FLOAT)


class ClinicalStudies(Base):
    __tablename__ = 'clinical_studies'

    project_num = Column('project.num', VARCHAR(50), primary_key=True)
    trial_id = Column('trial.id', VARCHAR(20), primary_key=True)
    study_status = Column('study.status', VARCHAR(30), index=True)


class Patents(Base):
    __tablename__ = 'patents'

    project_num = Column('project.num', VARCHAR(50), primary_key=True)
    patent_id = Column('patent.id', VARCHAR(20), primary_key=True)
    patent_org_name = Column('patent.org.name', VARCHAR(200))


class ProjectIO(Base):
    """Lifetime inputs (dollars) and outputs (publications, patents)
    of each project. :code:`total.cost` is the sum of :code:`fy.cost`
    over every fiscal year of the project."""
    __tablename__ = 'project_io'

    project_num = Column('project.num', VARCHAR(50), primary_key=True)
    total_cost = Column('total.cost', FLOAT)
    n_pubs = Column('n.pubs', INTEGER)
    n_patents = Column('n.patents', INTEGER)
