'''
Run analyses
============

Load the tables and run every analysis over them, with the
parameters from the :code:`[analysis]` section of the config.
Run as a script to log a summary of each derived table.
'''

import logging

from nihexporter.core.misctools import get_config
from nihexporter.core.misctools import split_config_list
from nihexporter.packages.exporter import binning
from nihexporter.packages.exporter import pipeline


def expensive_non_r01(min_total_cost):
    """Filter for projects which aren't R01s, and which cost
    more than :code:`min_total_cost` over their lifetime."""
    def predicate(frame):
        return ((frame['activity'] != 'R01') &
                (frame['total.cost'] > min_total_cost))
    return predicate


def run_analyses(store, config=None):
    '''Run every analysis over the store.

    Args:
        store (TableStore): The loaded tables.
        config (dict): Analysis parameters (:code:`bucket_count`,
                       :code:`breakpoints`, :code:`min_total_cost`), by
                       default read from the config file.
    Returns:
        :obj:`dict` of analysis name to derived :code:`pd.DataFrame`.
    '''
    if config is None:
        config = get_config('analysis')
    bucket_count = int(config['bucket_count'])
    breakpoints = split_config_list(config['breakpoints'])
    min_total_cost = float(config['min_total_cost'])

    projects, project_io = store.projects, store.project_io
    deciles = binning.bin_grants_by_cost_decile(projects, project_io,
                                                bucket_count)
    intervals = binning.bin_grants_by_cost_interval(projects, project_io,
                                                    breakpoints)
    return {
        'io_inconsistencies': pipeline.check_project_io_consistency(
            projects, project_io),
        'cost_by_institution_year': pipeline.aggregate_cost_by_institution_year(
            projects, store.project_orgs, store.org_info),
        'cost_by_state': pipeline.aggregate_cost_by_state(
            projects, store.project_orgs, store.org_info),
        'cost_by_pi': pipeline.aggregate_cost_by_pi(projects,
                                                    store.project_pis),
        'cost_by_institute_year': pipeline.aggregate_cost_by_institute_year(
            projects),
        'productivity': pipeline.compute_productivity(
            projects, project_io,
            filter_predicate=expensive_non_r01(min_total_cost),
            drop_undefined=True),
        'institute_output_costs': pipeline.compute_institute_output_costs(
            projects, project_io),
        'grant_duration': pipeline.compute_grant_duration(projects),
        'rcr_by_institute': pipeline.summarise_rcr_by_institute(
            projects, store.publinks, store.publications),
        'cost_deciles': binning.summarise_cost_bins(deciles, 'n.tile'),
        'cost_intervals': binning.summarise_cost_bins(intervals, 'cost.bin'),
    }


if __name__ == "__main__":
    from nihexporter.packages.exporter.table_store import load

    log_stream_handler = logging.StreamHandler()
    logging.basicConfig(handlers=(log_stream_handler,),
                        level=logging.INFO,
                        format="%(asctime)s:%(levelname)s:%(message)s")

    store = load()
    for name, frame in run_analyses(store).items():
        logging.info(f"{name}: {len(frame)} rows\n{frame.head(10)}")
