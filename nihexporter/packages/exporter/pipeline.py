'''
Pipeline
========

Join, group and summarise analyses over the EXPORTER tables.
Every function takes the tables it needs explicitly, never modifies
them, and returns a new :code:`pd.DataFrame`. Joins are made on
explicit key columns and validated against the key's cardinality,
so that a key which is unexpectedly duplicated raises
:code:`pandas.errors.MergeError` rather than silently fanning out.

Conventions which hold for every analysis:

  * Missing :code:`fy.cost` values count as zero in sums.
  * Dollars are kept as dollars, never rescaled.
  * Ratios with a zero denominator are NaN, never 0 or inf.
  * Left-join misses keep the row with nulls on the right hand side,
    and are reported with a warning.
  * Ties keep their input order when sorting.
'''

import logging
import numpy as np

from nihexporter.packages.format_utils.datetools import days_to_years

PROJECT_NUM = 'project.num'
APPLICATION_ID = 'application.id'
ORG_DUNS = 'org.duns'
PI_ID = 'pi.id'
COST = 'fy.cost'


def _as_collection(values):
    """Allow a single string where a collection of strings is expected"""
    if isinstance(values, str):
        return [values]
    return list(values)


def _sort_descending(frame, column):
    return (frame.sort_values(column, ascending=False, kind='mergesort')
            .reset_index(drop=True))


def safe_ratio(numerator, denominator):
    """Divide two columns, giving NaN where the denominator is
    zero or null."""
    denominator = denominator.astype(float)
    return numerator / denominator.where(denominator != 0)


def _warn_unmatched(merged, indicator, what):
    """Log the number of left-join misses, flagged by the merge indicator"""
    n_unmatched = (merged[indicator] == 'left_only').sum()
    if n_unmatched > 0:
        logging.warning(f"{n_unmatched} rows have no matching {what}")


def _split_cost(frame, key, link):
    """Divide each row's cost equally between the links of its key.
    Rows without any link keep their full cost."""
    n_links = frame.groupby(key)[link].transform('count')
    return frame[COST] / n_links.where(n_links > 0, 1)


def project_attributes(projects):
    """Reduce the yearly project rows to one row per project,
    keeping the first institute and activity seen."""
    return (projects.drop_duplicates(PROJECT_NUM)
            [[PROJECT_NUM, 'institute', 'activity']]
            .reset_index(drop=True))


def sum_cost_by_project(projects, name='total.cost'):
    '''Total :code:`fy.cost` over every fiscal year of each project.

    Args:
        projects (pd.DataFrame): The projects table.
        name (str): Name of the output column.
    Returns:
        :code:`pd.DataFrame` with columns :code:`project.num, {name}`.
    '''
    frame = projects[[PROJECT_NUM, COST]].fillna({COST: 0})
    return (frame.groupby(PROJECT_NUM, sort=False)[COST].sum()
            .rename(name).reset_index())


def filter_by_activity_and_institute(projects, activities, institutes):
    '''Select the project rows with any of the given activity codes
    and institutes.

    Args:
        projects (pd.DataFrame): The projects table.
        activities (list): Activity codes, e.g. :code:`['R01', 'P01']`.
        institutes (list): Institute codes, e.g. :code:`['GM']`.
    Returns:
        The matching rows, which may be empty.
    '''
    mask = (projects['activity'].isin(_as_collection(activities)) &
            projects['institute'].isin(_as_collection(institutes)))
    return projects.loc[mask].copy()


def _join_orgs(projects, project_orgs, apportion=False):
    """Left-join the yearly project costs to their organisations,
    keeping projects without an organisation."""
    frame = projects[[APPLICATION_ID, 'fiscal.year', COST]].fillna({COST: 0})
    frame = frame.merge(project_orgs[[APPLICATION_ID, ORG_DUNS]],
                        how='left', on=APPLICATION_ID,
                        validate='one_to_many', indicator='_match')
    _warn_unmatched(frame, '_match', 'organisation')
    if apportion:
        frame[COST] = _split_cost(frame, APPLICATION_ID, ORG_DUNS)
    return frame.drop(columns='_match')


def _attach_org_info(frame, org_info, columns):
    frame = frame.merge(org_info[[ORG_DUNS] + columns], how='left',
                        on=ORG_DUNS, validate='many_to_one',
                        indicator='_match')
    unmatched = frame.loc[frame['_match'] == 'left_only', ORG_DUNS]
    if unmatched.notna().any():
        logging.warning(f"{unmatched.notna().sum()} rows have an org.duns "
                        "with no organisation info")
    return frame.drop(columns='_match')


def aggregate_cost_by_institution_year(projects, project_orgs, org_info,
                                       apportion=False):
    '''Total dollars per organisation per fiscal year.

    Projects are left-joined to their organisations, so that a project
    without an organisation is totalled under a null :code:`org.duns`,
    and an :code:`org.duns` without organisation info keeps a null
    :code:`org.name`. A project with several organisations counts in
    full towards each of them, unless :code:`apportion` is set, in which
    case its cost is divided equally between them.

    Args:
        projects (pd.DataFrame): The projects table.
        project_orgs (pd.DataFrame): The project_orgs table.
        org_info (pd.DataFrame): The org_info table.
        apportion (bool): Split costs between organisations.
    Returns:
        :code:`pd.DataFrame` with columns :code:`fiscal.year, org.duns,
        org.name, total.dollars`, sorted by descending dollars.
    '''
    frame = _join_orgs(projects, project_orgs, apportion=apportion)
    totals = (frame.groupby([ORG_DUNS, 'fiscal.year'], dropna=False,
                            sort=False)[COST].sum()
              .rename('total.dollars').reset_index())
    totals = _attach_org_info(totals, org_info, ['org.name'])
    totals = totals[['fiscal.year', ORG_DUNS, 'org.name', 'total.dollars']]
    return _sort_descending(totals, 'total.dollars')


def aggregate_cost_by_state(projects, project_orgs, org_info):
    '''Total dollars per organisation state. Projects without an
    organisation (or organisation info) are totalled under a null
    :code:`org.state`.

    Returns:
        :code:`pd.DataFrame` with columns :code:`org.state, total.dollars`,
        sorted by descending dollars.
    '''
    frame = _join_orgs(projects, project_orgs)
    frame = _attach_org_info(frame, org_info, ['org.state'])
    totals = (frame.groupby('org.state', dropna=False, sort=False)[COST]
              .sum().rename('total.dollars').reset_index())
    return _sort_descending(totals, 'total.dollars')


def aggregate_cost_by_pi(projects, project_pis, apportion=False):
    '''Total dollars per principal investigator.

    Costs are first totalled per project (since a project has one row
    per fiscal year) and then joined to the PI links. A project with
    several PIs counts in full towards each of them, so that the sum
    over PIs exceeds the sum over projects; set :code:`apportion`
    to divide a project's cost equally between its PIs instead.
    Links with a null or blank :code:`pi.id` are dropped.

    Args:
        projects (pd.DataFrame): The projects table.
        project_pis (pd.DataFrame): The project_pis table.
        apportion (bool): Split costs between PIs.
    Returns:
        :code:`pd.DataFrame` with columns :code:`pi.id, pi.dollars`,
        sorted by descending dollars.
    '''
    costs = sum_cost_by_project(projects, name=COST)
    links = project_pis[[PROJECT_NUM, PI_ID]]
    frame = costs.merge(links, how='left', on=PROJECT_NUM,
                        validate='one_to_many')
    blank = frame[PI_ID].isna() | (frame[PI_ID].astype(str).str.strip() == '')
    frame = frame.loc[~blank].copy()
    if apportion:
        frame[COST] = _split_cost(frame, PROJECT_NUM, PI_ID)
    totals = (frame.groupby(PI_ID, sort=False)[COST].sum()
              .rename('pi.dollars').reset_index())
    return _sort_descending(totals, 'pi.dollars')


def aggregate_cost_by_institute_year(projects):
    '''Total dollars and number of distinct projects per institute
    per fiscal year.

    Returns:
        :code:`pd.DataFrame` with columns :code:`institute, fiscal.year,
        total.dollars, n.projects`.
    '''
    frame = projects.fillna({COST: 0})
    return (frame.groupby(['institute', 'fiscal.year'], dropna=False)
            .agg(**{'total.dollars': (COST, 'sum'),
                    'n.projects': (PROJECT_NUM, 'nunique')})
            .reset_index())


def compute_productivity(projects, project_io, filter_predicate=None,
                         drop_undefined=False):
    '''Cost per publication of each project.

    Args:
        projects (pd.DataFrame): The projects table.
        project_io (pd.DataFrame): The project_io table.
        filter_predicate (function): Optional function of the joined
                                     frame returning a boolean mask of
                                     rows to keep, e.g.
                                     :code:`lambda df: df['total.cost'] > 1e6`
        drop_undefined (bool): Drop projects without publications, for
                               which :code:`cost.per.pub` is undefined.
    Returns:
        :code:`pd.DataFrame` with columns :code:`project.num, institute,
        activity, total.cost, n.pubs, cost.per.pub`. :code:`cost.per.pub`
        is NaN where :code:`n.pubs` is zero.
    '''
    frame = project_attributes(projects).merge(
        project_io[[PROJECT_NUM, 'total.cost', 'n.pubs']],
        how='inner', on=PROJECT_NUM, validate='one_to_one')
    if filter_predicate is not None:
        frame = frame.loc[filter_predicate(frame)]
    frame = frame.assign(**{'cost.per.pub': safe_ratio(frame['total.cost'],
                                                       frame['n.pubs'])})
    undefined = frame['cost.per.pub'].isna()
    if drop_undefined:
        logging.info(f"Dropping {undefined.sum()} projects with an "
                     "undefined cost per publication")
        frame = frame.loc[~undefined]
    elif undefined.any():
        logging.warning(f"{undefined.sum()} projects have an undefined "
                        "cost per publication")
    return frame.reset_index(drop=True)


def compute_institute_output_costs(projects, project_io):
    '''Total dollars, publications and patents per institute, and the
    cost per publication (:code:`pub.cost`) and per patent
    (:code:`patent.cost`). Either ratio is NaN if the institute
    has no outputs of that kind.'''
    frame = project_attributes(projects).merge(
        project_io, how='inner', on=PROJECT_NUM, validate='one_to_one')
    frame = (frame.groupby('institute')
             [['total.cost', 'n.pubs', 'n.patents']].sum().reset_index())
    frame['pub.cost'] = safe_ratio(frame['total.cost'], frame['n.pubs'])
    frame['patent.cost'] = safe_ratio(frame['total.cost'],
                                      frame['n.patents'])
    return frame


def compute_grant_duration(projects):
    '''Lifetime of each project, from the earliest
    :code:`project.start` to the latest :code:`project.end`
    over all of its yearly rows.

    Projects without a valid span (missing dates, or ending before
    they start) are excluded.

    Returns:
        :code:`pd.DataFrame` with columns :code:`project.num, institute,
        duration.years`, sorted by descending duration.
    '''
    spans = (projects.groupby(PROJECT_NUM, sort=False)
             .agg(**{'institute': ('institute', 'first'),
                     'project.start': ('project.start', 'min'),
                     'project.end': ('project.end', 'max')})
             .reset_index())
    days = (spans['project.end'] - spans['project.start']).dt.days
    spans['duration.years'] = days_to_years(days)
    valid = spans['duration.years'].notna() & (spans['duration.years'] >= 0)
    if not valid.all():
        logging.warning(f"Excluding {(~valid).sum()} projects without "
                        "a valid start and end date")
    spans = spans.loc[valid, [PROJECT_NUM, 'institute', 'duration.years']]
    return _sort_descending(spans, 'duration.years')


def rollup_project_io(projects, publinks, patents):
    '''Rebuild the project_io table from its sources: the lifetime
    cost of each project, and its number of distinct publications
    and patents.

    Returns:
        :code:`pd.DataFrame` with columns :code:`project.num, total.cost,
        n.pubs, n.patents`.
    '''
    n_pubs = (publinks.groupby(PROJECT_NUM)['pmid'].nunique()
              .rename('n.pubs').reset_index())
    n_patents = (patents.groupby(PROJECT_NUM)['patent.id'].nunique()
                 .rename('n.patents').reset_index())
    frame = sum_cost_by_project(projects)
    for counts in (n_pubs, n_patents):
        frame = frame.merge(counts, how='left', on=PROJECT_NUM,
                            validate='one_to_one')
    counts = ['n.pubs', 'n.patents']
    frame[counts] = frame[counts].fillna(0).astype('int64')
    return frame


def check_project_io_consistency(projects, project_io, rtol=1e-6):
    '''Compare :code:`project_io.total.cost` with the sum of
    :code:`fy.cost` over each project's yearly rows, for every
    project in both tables.

    Args:
        projects (pd.DataFrame): The projects table.
        project_io (pd.DataFrame): The project_io table.
        rtol (float): Relative tolerance of the comparison.
    Returns:
        :code:`pd.DataFrame` with columns :code:`project.num, fy.total,
        total.cost` of the inconsistent projects (empty if consistent).
    '''
    frame = sum_cost_by_project(projects, name='fy.total').merge(
        project_io[[PROJECT_NUM, 'total.cost']], how='inner',
        on=PROJECT_NUM, validate='one_to_one')
    consistent = np.isclose(frame['fy.total'], frame['total.cost'],
                            rtol=rtol, atol=0)
    mismatched = frame.loc[~consistent].reset_index(drop=True)
    if len(mismatched) > 0:
        logging.warning(f"{len(mismatched)} projects have a total.cost "
                        "inconsistent with their yearly costs")
    return mismatched


def summarise_rcr_by_institute(projects, publinks, publications):
    '''Number of distinct publications linked to each institute's
    projects, and their median and mean Relative Citation Ratio.
    Publications without an RCR don't count towards the statistics.

    Returns:
        :code:`pd.DataFrame` with columns :code:`institute, n.pubs,
        rcr.median, rcr.mean`.
    '''
    frame = project_attributes(projects)[[PROJECT_NUM, 'institute']]
    frame = frame.merge(publinks[[PROJECT_NUM, 'pmid']], how='inner',
                        on=PROJECT_NUM, validate='one_to_many')
    frame = frame.drop_duplicates(['institute', 'pmid'])
    frame = frame.merge(publications[['pmid', 'rcr']], how='left',
                        on='pmid', validate='many_to_one')
    return (frame.groupby('institute')
            .agg(**{'n.pubs': ('pmid', 'nunique'),
                    'rcr.median': ('rcr', 'median'),
                    'rcr.mean': ('rcr', 'mean')})
            .reset_index())
