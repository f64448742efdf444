import math
import pandas as pd
import pytest
from pandas.errors import MergeError

from nihexporter.packages.exporter.pipeline import aggregate_cost_by_institute_year
from nihexporter.packages.exporter.pipeline import aggregate_cost_by_institution_year
from nihexporter.packages.exporter.pipeline import aggregate_cost_by_pi
from nihexporter.packages.exporter.pipeline import aggregate_cost_by_state
from nihexporter.packages.exporter.pipeline import check_project_io_consistency
from nihexporter.packages.exporter.pipeline import compute_grant_duration
from nihexporter.packages.exporter.pipeline import compute_institute_output_costs
from nihexporter.packages.exporter.pipeline import compute_productivity
from nihexporter.packages.exporter.pipeline import filter_by_activity_and_institute
from nihexporter.packages.exporter.pipeline import rollup_project_io
from nihexporter.packages.exporter.pipeline import safe_ratio
from nihexporter.packages.exporter.pipeline import sum_cost_by_project
from nihexporter.packages.exporter.pipeline import summarise_rcr_by_institute


def _project_io(rows):
    return pd.DataFrame(rows, columns=['project.num', 'total.cost',
                                       'n.pubs', 'n.patents'])


def test_safe_ratio():
    ratio = safe_ratio(pd.Series([10., 9., 0., 4.]),
                       pd.Series([2, 0, 0, None]))
    assert ratio[0] == 5
    assert all(math.isnan(r) for r in ratio[1:])


class TestFilterByActivityAndInstitute():
    def test_filter(self, projects_factory):
        projects = projects_factory([('P1', 'GM', 'R01', 2010, 100),
                                     ('P2', 'GM', 'P01', 2010, 100),
                                     ('P3', 'CA', 'R01', 2010, 100),
                                     ('P4', 'AI', 'U01', 2010, 100)])
        filtered = filter_by_activity_and_institute(projects,
                                                    ['R01', 'U01'],
                                                    ['GM', 'AI'])
        assert list(filtered['project.num']) == ['P1', 'P4']

    def test_single_strings(self, projects_factory):
        projects = projects_factory([('P1', 'GM', 'R01', 2010, 100),
                                     ('P2', 'GM', 'P01', 2010, 100)])
        filtered = filter_by_activity_and_institute(projects, 'P01', 'GM')
        assert list(filtered['project.num']) == ['P2']

    def test_no_match_is_empty(self, projects_factory):
        projects = projects_factory([('P1', 'GM', 'R01', 2010, 100)])
        filtered = filter_by_activity_and_institute(projects, ['K99'], ['GM'])
        assert len(filtered) == 0
        assert list(filtered.columns) == list(projects.columns)


class TestAggregateCostByInstitutionYear():
    @staticmethod
    @pytest.fixture
    def org_info():
        return pd.DataFrame([('duns1', 'Acme', 'CO'),
                             ('duns2', 'Beta', 'MD')],
                            columns=['org.duns', 'org.name', 'org.state'])

    def test_single_row(self, projects_factory, org_info):
        projects = projects_factory([('P1', 'GM', 'R01', 2010, 50)])
        project_orgs = pd.DataFrame([(1000, 'duns1')],
                                    columns=['application.id', 'org.duns'])
        totals = aggregate_cost_by_institution_year(projects, project_orgs,
                                                    org_info)
        assert len(totals) == 1
        row = totals.iloc[0]
        assert row['fiscal.year'] == 2010
        assert row['org.name'] == 'Acme'
        assert row['total.dollars'] == 50

    def test_grouped_and_sorted(self, projects_factory, org_info):
        projects = projects_factory([('P1', 'GM', 'R01', 2010, 50),
                                     ('P1', 'GM', 'R01', 2011, 60),
                                     ('P2', 'CA', 'R01', 2010, 200),
                                     ('P3', 'CA', 'R21', 2010, None)])
        project_orgs = pd.DataFrame([(1000, 'duns1'), (1001, 'duns1'),
                                     (1002, 'duns2'), (1003, 'duns1')],
                                    columns=['application.id', 'org.duns'])
        totals = aggregate_cost_by_institution_year(projects, project_orgs,
                                                    org_info)
        assert list(totals['org.name']) == ['Beta', 'Acme', 'Acme']
        assert list(totals['fiscal.year']) == [2010, 2011, 2010]
        assert list(totals['total.dollars']) == [200, 60, 50]

    def test_left_join_keeps_unknown_orgs(self, projects_factory, org_info):
        projects = projects_factory([('P1', 'GM', 'R01', 2010, 50),
                                     ('P2', 'GM', 'R01', 2010, 70)])
        project_orgs = pd.DataFrame([(1000, 'duns1'), (1001, 'duns9')],
                                    columns=['application.id', 'org.duns'])
        totals = aggregate_cost_by_institution_year(projects, project_orgs,
                                                    org_info)
        unknown = totals.loc[totals['org.duns'] == 'duns9'].iloc[0]
        assert pd.isnull(unknown['org.name'])
        assert unknown['total.dollars'] == 70

    def test_projects_without_orgs_are_kept(self, projects_factory, org_info):
        projects = projects_factory([('P1', 'GM', 'R01', 2010, 50),
                                     ('P2', 'GM', 'R01', 2010, 70)])
        project_orgs = pd.DataFrame([(1000, 'duns1')],
                                    columns=['application.id', 'org.duns'])
        totals = aggregate_cost_by_institution_year(projects, project_orgs,
                                                    org_info)
        assert len(totals) == 2
        assert totals['total.dollars'].sum() == 120
        assert totals['org.duns'].isna().sum() == 1

    def test_apportion(self, projects_factory, org_info):
        projects = projects_factory([('P1', 'GM', 'R01', 2010, 100)])
        project_orgs = pd.DataFrame([(1000, 'duns1'), (1000, 'duns2')],
                                    columns=['application.id', 'org.duns'])
        fanned = aggregate_cost_by_institution_year(projects, project_orgs,
                                                    org_info)
        split = aggregate_cost_by_institution_year(projects, project_orgs,
                                                   org_info, apportion=True)
        assert list(fanned['total.dollars']) == [100, 100]
        assert list(split['total.dollars']) == [50, 50]

    def test_duplicate_org_info_raises(self, projects_factory, org_info):
        projects = projects_factory([('P1', 'GM', 'R01', 2010, 100)])
        project_orgs = pd.DataFrame([(1000, 'duns1')],
                                    columns=['application.id', 'org.duns'])
        org_info = pd.concat([org_info, org_info])
        with pytest.raises(MergeError):
            aggregate_cost_by_institution_year(projects, project_orgs,
                                               org_info)

    def test_inputs_unchanged(self, projects_factory, org_info):
        projects = projects_factory([('P1', 'GM', 'R01', 2010, None)])
        project_orgs = pd.DataFrame([(1000, 'duns1')],
                                    columns=['application.id', 'org.duns'])
        before = projects.copy()
        aggregate_cost_by_institution_year(projects, project_orgs, org_info)
        pd.testing.assert_frame_equal(projects, before)


def test_aggregate_cost_by_state(sample_store):
    totals = aggregate_cost_by_state(sample_store.projects,
                                     sample_store.project_orgs,
                                     sample_store.org_info)
    by_state = dict(zip(totals['org.state'].fillna('??'),
                        totals['total.dollars']))
    # 1005 has two organisations, so counts in both CO and CA
    assert by_state == {'MD': 2250000, 'CO': 3130000,
                        'CA': 1150000, '??': 150000}
    assert list(totals['org.state'][:2]) == ['CO', 'MD']


class TestAggregateCostByPI():
    def test_fan_out(self, projects_factory):
        projects = projects_factory([('P1', 'GM', 'R01', 2010, 100),
                                     ('P1', 'GM', 'R01', 2011, 200),
                                     ('P2', 'GM', 'R01', 2010, 50)])
        project_pis = pd.DataFrame([('P1', 'pi1'), ('P1', 'pi2'),
                                    ('P2', 'pi2')],
                                   columns=['project.num', 'pi.id'])
        totals = aggregate_cost_by_pi(projects, project_pis)
        assert list(totals['pi.id']) == ['pi2', 'pi1']
        assert list(totals['pi.dollars']) == [350, 300]
        # Each PI of P1 receives its full cost
        assert totals['pi.dollars'].sum() > sum_cost_by_project(
            projects)['total.cost'].sum()

    def test_blank_pis_excluded(self, projects_factory):
        projects = projects_factory([('P1', 'GM', 'R01', 2010, 100),
                                     ('P2', 'GM', 'R01', 2010, 50),
                                     ('P3', 'GM', 'R01', 2010, 25)])
        project_pis = pd.DataFrame([('P1', 'pi1'), ('P2', None),
                                    ('P3', '  ')],
                                   columns=['project.num', 'pi.id'])
        totals = aggregate_cost_by_pi(projects, project_pis)
        assert list(totals['pi.id']) == ['pi1']

    def test_apportion(self, projects_factory):
        projects = projects_factory([('P1', 'GM', 'R01', 2010, 100)])
        project_pis = pd.DataFrame([('P1', 'pi1'), ('P1', 'pi2')],
                                   columns=['project.num', 'pi.id'])
        totals = aggregate_cost_by_pi(projects, project_pis, apportion=True)
        assert list(totals['pi.dollars']) == [50, 50]

    def test_sample(self, sample_store):
        totals = aggregate_cost_by_pi(sample_store.projects,
                                      sample_store.project_pis)
        by_pi = dict(zip(totals['pi.id'], totals['pi.dollars']))
        assert by_pi['10000001'] == 780000 + 2350000
        assert by_pi['10000003'] == 400000 + 1850000
        assert totals['pi.id'].iloc[0] == '10000001'


def test_aggregate_cost_by_institute_year(projects_factory):
    projects = projects_factory([('P1', 'GM', 'R01', 2010, 100),
                                 ('P2', 'GM', 'R01', 2010, None),
                                 ('P1', 'GM', 'R01', 2011, 200),
                                 ('P3', 'CA', 'R01', 2010, 50)])
    totals = aggregate_cost_by_institute_year(projects)
    assert list(totals['institute']) == ['CA', 'GM', 'GM']
    assert list(totals['fiscal.year']) == [2010, 2010, 2011]
    assert list(totals['total.dollars']) == [50, 100, 200]
    assert list(totals['n.projects']) == [1, 2, 1]


def test_aggregate_cost_by_institute_year_keeps_nulls(projects_factory):
    projects = projects_factory([('P1', 'GM', 'R01', 2010, 100),
                                 ('P2', None, 'R01', 2010, 40),
                                 ('P3', 'GM', 'R01', None, 10)])
    totals = aggregate_cost_by_institute_year(projects)
    assert totals['total.dollars'].sum() == 150
    assert len(totals) == 3
    unknown = totals.loc[totals['institute'].isna()].iloc[0]
    assert unknown['total.dollars'] == 40


def test_analyses_leave_store_unchanged(sample_store):
    before = {name: table.copy() for name, table in sample_store}
    aggregate_cost_by_institution_year(sample_store.projects,
                                       sample_store.project_orgs,
                                       sample_store.org_info, apportion=True)
    aggregate_cost_by_pi(sample_store.projects, sample_store.project_pis,
                         apportion=True)
    compute_institute_output_costs(sample_store.projects,
                                   sample_store.project_io)
    compute_grant_duration(sample_store.projects)
    rollup_project_io(sample_store.projects, sample_store.publinks,
                      sample_store.patents)
    for name, table in sample_store:
        pd.testing.assert_frame_equal(table, before[name])


class TestNullCosts():
    def test_nulls_sum_as_if_absent(self, projects_factory):
        rows = [('P1', 'GM', 'R01', 2010, 100),
                ('P1', 'GM', 'R01', 2011, None),
                ('P1', 'GM', 'R01', 2012, 300)]
        with_nulls = sum_cost_by_project(projects_factory(rows))
        without = sum_cost_by_project(projects_factory([rows[0], rows[2]]))
        pd.testing.assert_frame_equal(with_nulls, without)

    def test_all_null_sums_to_zero(self, projects_factory):
        projects = projects_factory([('P1', 'GM', 'R01', 2010, None)])
        assert sum_cost_by_project(projects)['total.cost'][0] == 0


class TestComputeProductivity():
    def test_cost_per_pub(self, projects_factory):
        projects = projects_factory([('P1', 'GM', 'P01', 2010, 1000000),
                                     ('P1', 'GM', 'P01', 2011, 1000000)])
        project_io = _project_io([('P1', 2000000, 4, 0)])
        frame = compute_productivity(projects, project_io)
        assert len(frame) == 1
        assert frame['cost.per.pub'][0] == 500000

    def test_zero_pubs_is_undefined(self, projects_factory):
        projects = projects_factory([('P1', 'GM', 'P01', 2010, 2000000)])
        project_io = _project_io([('P1', 2000000, 0, 0)])
        frame = compute_productivity(projects, project_io)
        assert len(frame) == 1
        assert math.isnan(frame['cost.per.pub'][0])

    def test_drop_undefined(self, projects_factory):
        projects = projects_factory([('P1', 'GM', 'P01', 2010, 2000000),
                                     ('P2', 'GM', 'P01', 2010, 100)])
        project_io = _project_io([('P1', 2000000, 0, 0), ('P2', 100, 1, 0)])
        frame = compute_productivity(projects, project_io,
                                     drop_undefined=True)
        assert list(frame['project.num']) == ['P2']

    def test_filter_predicate(self, projects_factory):
        projects = projects_factory([('P1', 'GM', 'R01', 2010, 2000000),
                                     ('P2', 'GM', 'P01', 2010, 2000000),
                                     ('P3', 'GM', 'P01', 2010, 100)])
        project_io = _project_io([('P1', 2000000, 2, 0),
                                  ('P2', 2000000, 4, 0),
                                  ('P3', 100, 1, 0)])
        frame = compute_productivity(
            projects, project_io,
            filter_predicate=lambda df: ((df['activity'] != 'R01') &
                                         (df['total.cost'] > 1e6)))
        assert list(frame['project.num']) == ['P2']
        assert frame['cost.per.pub'][0] == 500000

    def test_one_row_per_project(self, sample_store):
        frame = compute_productivity(sample_store.projects,
                                     sample_store.project_io)
        assert len(frame) == frame['project.num'].nunique() == 5


def test_compute_institute_output_costs(sample_store):
    frame = compute_institute_output_costs(sample_store.projects,
                                           sample_store.project_io)
    frame = frame.set_index('institute')
    assert frame.loc['GM', 'total.cost'] == 3130000
    assert frame.loc['GM', 'n.pubs'] == 7
    assert frame.loc['GM', 'patent.cost'] == 3130000
    assert frame.loc['CA', 'pub.cost'] == 2250000 / 2
    assert math.isnan(frame.loc['CA', 'patent.cost'])


class TestComputeGrantDuration():
    def test_two_years(self, projects_factory):
        projects = projects_factory([
            ('P1', 'GM', 'R01', 2010, 100, '2010-01-01', '2011-12-31'),
            ('P1', 'GM', 'R01', 2011, 200, '2010-01-01', '2011-12-31')])
        duration = compute_grant_duration(projects)
        assert len(duration) == 1
        assert duration['duration.years'][0] == pytest.approx(2.0,
                                                              abs=1.01/365)

    def test_span_over_rows(self, projects_factory):
        projects = projects_factory([
            ('P1', 'GM', 'R01', 2010, 100, '2010-01-01', '2010-12-31'),
            ('P1', 'GM', 'R01', 2011, 200, '2011-01-01', '2015-01-01'),
            ('P2', 'GM', 'R01', 2011, 200, '2011-01-01', '2011-12-31')])
        duration = compute_grant_duration(projects)
        assert list(duration['project.num']) == ['P1', 'P2']
        assert duration['duration.years'][0] == (
            pd.Timestamp('2015-01-01') - pd.Timestamp('2010-01-01')).days / 365

    def test_order_invariant(self, projects_factory):
        rows = [('P1', 'GM', 'R01', 2010, 100, '2010-03-01', '2012-12-31'),
                ('P1', 'GM', 'R01', 2011, 200, '2009-01-01', '2013-06-30'),
                ('P1', 'GM', 'R01', 2012, 200, '2011-01-01', '2011-12-31')]
        projects = projects_factory(rows)
        shuffled = projects.sample(frac=1, random_state=42)
        pd.testing.assert_frame_equal(compute_grant_duration(projects),
                                      compute_grant_duration(shuffled))
        pd.testing.assert_frame_equal(compute_grant_duration(projects),
                                      compute_grant_duration(projects))

    def test_invalid_spans_excluded(self, projects_factory):
        projects = projects_factory([
            ('P1', 'GM', 'R01', 2010, 100, '2012-01-01', '2010-12-31'),
            ('P2', 'GM', 'R01', 2010, 100),
            ('P3', 'GM', 'R01', 2010, 100, '2010-01-01', '2010-12-31')])
        duration = compute_grant_duration(projects)
        assert list(duration['project.num']) == ['P3']


class TestProjectIO():
    def test_sample_is_consistent(self, sample_store):
        mismatched = check_project_io_consistency(sample_store.projects,
                                                  sample_store.project_io)
        assert len(mismatched) == 0

    def test_mismatch_reported(self, projects_factory):
        projects = projects_factory([('P1', 'GM', 'R01', 2010, 100),
                                     ('P1', 'GM', 'R01', 2011, None),
                                     ('P2', 'GM', 'R01', 2010, 100),
                                     ('P3', 'GM', 'R01', 2010, 100)])
        project_io = _project_io([('P1', 100.00001, 1, 0),
                                  ('P2', 101, 1, 0),
                                  ('P4', 5, 1, 0)])
        mismatched = check_project_io_consistency(projects, project_io)
        assert list(mismatched['project.num']) == ['P2']
        assert mismatched['fy.total'][0] == 100
        assert mismatched['total.cost'][0] == 101

    def test_rollup_matches_sample(self, sample_store):
        rolled = rollup_project_io(sample_store.projects,
                                   sample_store.publinks,
                                   sample_store.patents)
        expected = sample_store.project_io.sort_values('project.num')
        rolled = rolled.sort_values('project.num')
        assert list(rolled['project.num']) == list(expected['project.num'])
        assert list(rolled['n.pubs']) == list(expected['n.pubs'])
        assert list(rolled['n.patents']) == list(expected['n.patents'])
        assert list(rolled['total.cost']) == list(expected['total.cost'])


def test_summarise_rcr_by_institute(sample_store):
    frame = summarise_rcr_by_institute(sample_store.projects,
                                       sample_store.publinks,
                                       sample_store.publications)
    frame = frame.set_index('institute')
    assert frame.loc['GM', 'n.pubs'] == 7
    assert frame.loc['GM', 'rcr.median'] == pytest.approx(1.2)
    # The publication without an RCR is ignored
    assert frame.loc['CA', 'n.pubs'] == 2
    assert frame.loc['CA', 'rcr.mean'] == pytest.approx(2.0)
    assert 'AI' in frame.index
