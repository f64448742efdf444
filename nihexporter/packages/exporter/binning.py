'''
Binning
=======

Two alternative ways of grouping projects by their lifetime cost,
to study where productivity (publications per dollar) levels off:

  * :obj:`bin_grants_by_cost_decile`: rank-based, equal-population
    buckets per institute (quantile binning).
  * :obj:`bin_grants_by_cost_interval`: fixed dollar intervals,
    common to all institutes.

The two don't share bucket boundaries and aren't meant to;
:obj:`summarise_cost_bins` reduces the output of either to
per-bucket totals.
'''

import logging
import numpy as np

from nihexporter.packages.exporter.pipeline import PROJECT_NUM
from nihexporter.packages.exporter.pipeline import project_attributes
from nihexporter.packages.exporter.pipeline import safe_ratio


def _project_totals(projects, project_io):
    """One row per project with its institute, lifetime cost and
    number of publications. Projects without a total cost or an
    institute can't be binned, and are excluded."""
    frame = project_attributes(projects)[[PROJECT_NUM, 'institute']].merge(
        project_io[[PROJECT_NUM, 'total.cost', 'n.pubs']], how='inner',
        on=PROJECT_NUM, validate='one_to_one')
    excluded = frame['total.cost'].isna() | frame['institute'].isna()
    if excluded.any():
        logging.warning(f"Excluding {excluded.sum()} projects without "
                        "a total cost or institute from binning")
    return frame.loc[~excluded].reset_index(drop=True)


def ntile(values, bucket_count):
    '''Assign each value to one of :code:`bucket_count` buckets of
    (as near as possible) equal size, numbered from 1 in increasing
    order of value. Ties are broken by the order of the input. Bucket
    sizes differ by at most one, and if there are fewer values than
    buckets, some buckets are empty.

    Args:
        values (pd.Series): Values to bucket.
        bucket_count (int): Number of buckets.
    Returns:
        :code:`pd.Series` of bucket numbers.
    '''
    ranks = values.rank(method='first')
    return (np.floor(bucket_count * (ranks - 1) / len(values)) + 1).astype(int)


def bin_grants_by_cost_decile(projects, project_io, bucket_count=10):
    '''Bucket each institute's projects into :code:`bucket_count`
    equal-population bins by lifetime cost.

    Args:
        projects (pd.DataFrame): The projects table.
        project_io (pd.DataFrame): The project_io table.
        bucket_count (int): Number of buckets per institute.
    Returns:
        :code:`pd.DataFrame` with columns :code:`project.num, institute,
        total.cost, n.pubs, n.tile`.
    '''
    if bucket_count < 1:
        raise ValueError(f"bucket_count must be positive, got {bucket_count}")
    frame = _project_totals(projects, project_io)
    frame['n.tile'] = (frame.groupby('institute')['total.cost']
                       .transform(lambda costs: ntile(costs, bucket_count)))
    return frame


def find_interval(values, breakpoints):
    '''Find the interval :code:`breaks[i] <= value < breaks[i+1]` of
    each value, numbered from 1. Values below the first breakpoint
    fall in the first interval, and values at or above the last
    breakpoint fall in the last interval.

    Args:
        values (array-like): Values to place.
        breakpoints (list): Strictly increasing interval boundaries.
    Returns:
        :code:`np.ndarray` of interval numbers, from 1 to
        :code:`len(breakpoints) - 1`.
    '''
    breaks = np.asarray(breakpoints, dtype=float)
    if len(breaks) < 2 or not np.all(np.diff(breaks) > 0):
        raise ValueError("At least two strictly increasing breakpoints "
                         f"are required, got {list(breakpoints)}")
    intervals = np.searchsorted(breaks, np.asarray(values, dtype=float),
                                side='right')
    return np.clip(intervals, 1, len(breaks) - 1)


def bin_grants_by_cost_interval(projects, project_io, breakpoints):
    '''Bucket projects into fixed intervals of lifetime cost.

    Args:
        projects (pd.DataFrame): The projects table.
        project_io (pd.DataFrame): The project_io table.
        breakpoints (list): Strictly increasing interval boundaries
                            in dollars.
    Returns:
        :code:`pd.DataFrame` with columns :code:`project.num, institute,
        total.cost, n.pubs, cost.bin`.
    '''
    frame = _project_totals(projects, project_io)
    frame['cost.bin'] = find_interval(frame['total.cost'], breakpoints)
    return frame


def summarise_cost_bins(binned, bin_column='n.tile'):
    '''Totals per institute per bin, from the output of either
    :obj:`bin_grants_by_cost_decile` or
    :obj:`bin_grants_by_cost_interval`.

    Args:
        binned (pd.DataFrame): Binned projects.
        bin_column (str): Either :code:`'n.tile'` or :code:`'cost.bin'`.
    Returns:
        :code:`pd.DataFrame` with columns :code:`institute, {bin_column},
        n.projects, total.cost, n.pubs, cost.per.pub`.
    '''
    frame = (binned.groupby(['institute', bin_column])
             .agg(**{'n.projects': (PROJECT_NUM, 'count'),
                     'total.cost': ('total.cost', 'sum'),
                     'n.pubs': ('n.pubs', 'sum')})
             .reset_index())
    frame['cost.per.pub'] = safe_ratio(frame['total.cost'], frame['n.pubs'])
    return frame
