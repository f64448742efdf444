'''
Table Store
===========

Load the cleaned NIH EXPORTER tables into memory, either from a
directory of CSV files (one :code:`<tablename>.csv` per table) or
from a database. Every table is validated against the schema in
:obj:`nihexporter.core.orms.exporter_orm`: each must be present and
carry exactly the schema's columns, and integer, float and date
columns are coerced to their types, and rows must be unique on the
table's primary key (and on :obj:`ALTERNATE_KEYS`). Loading is all-or-nothing, so
any failure raises :obj:`LoadError` and no partial store is returned.

The resulting :obj:`TableStore` is read-only, and is passed
explicitly to every analysis in
:obj:`nihexporter.packages.exporter.pipeline`.
'''

import logging
import os
import pandas as pd
from sqlalchemy import inspect
from sqlalchemy.exc import SQLAlchemyError

from nihexporter.core.misctools import DEFAULT_CONFIG
from nihexporter.core.misctools import find_config_path
from nihexporter.core.misctools import get_config
from nihexporter.core.orms.exporter_orm import Base
from nihexporter.core.orms.orm_utils import get_class_by_tablename
from nihexporter.core.orms.orm_utils import orm_column_names
from nihexporter.core.orms.orm_utils import orm_columns_of_type
from nihexporter.core.orms.orm_utils import orm_date_columns
from nihexporter.core.orms.orm_utils import orm_primary_key
from nihexporter.packages.format_utils.datetools import to_datetime_column
from nihexporter.packages.exporter.institutes import nih_institutes

TABLE_NAMES = ('projects', 'org_info', 'project_orgs', 'project_pis',
               'publinks', 'publications', 'clinical_studies', 'patents',
               'project_io')
INSTITUTES_TABLE = 'nih.institutes'
# Unique keys besides the primary key of each table
ALTERNATE_KEYS = {'projects': [['project.num', 'fiscal.year']]}
SAMPLE_DATA_DIR = os.path.join(os.path.dirname(os.path.dirname(DEFAULT_CONFIG)),
                               'data', 'sample')


class LoadError(Exception):
    '''Raised when a table can't be loaded: the source is missing,
    or the columns or values don't match the schema.'''
    def __init__(self, table, message):
        super().__init__(f"Could not load '{table}': {message}")
        self.table = table


class TableStore:
    '''Read-only collection of the EXPORTER tables, each a
    :code:`pd.DataFrame` accessible as an attribute named after
    the table (and :code:`institutes` for the static lookup).

    Only the attributes are protected: the tables themselves are
    ordinary DataFrames, so analyses must not modify them in place
    (every function in :obj:`nihexporter.packages.exporter.pipeline`
    returns new frames and leaves its inputs untouched).

    Args:
        tables (dict): Mapping of table name to :code:`pd.DataFrame`
                       for every name in :obj:`TABLE_NAMES`.
        institutes (pd.DataFrame): Institute lookup, defaults to
                                   :obj:`nih_institutes`.
    '''
    __slots__ = TABLE_NAMES + ('institutes',)

    def __init__(self, tables, institutes=None):
        missing = [name for name in TABLE_NAMES if name not in tables]
        if missing:
            raise ValueError(f"Missing tables: {missing}")
        for name in TABLE_NAMES:
            object.__setattr__(self, name, tables[name])
        if institutes is None:
            institutes = nih_institutes()
        object.__setattr__(self, 'institutes', institutes)

    def __setattr__(self, name, value):
        raise AttributeError(f"TableStore is read-only, can't set '{name}'")

    def __delattr__(self, name):
        raise AttributeError(f"TableStore is read-only, can't delete '{name}'")

    def table(self, name):
        """Retrieve a table by its name, including 'nih.institutes'"""
        if name == INSTITUTES_TABLE:
            return self.institutes
        if name not in TABLE_NAMES:
            raise KeyError(name)
        return getattr(self, name)

    def __iter__(self):
        """Yield (name, table) pairs, in schema order"""
        for name in TABLE_NAMES:
            yield name, getattr(self, name)
        yield INSTITUTES_TABLE, self.institutes


def _coerce_integers(values):
    """Coerce to integers, remaining as floats if there are nulls."""
    values = pd.to_numeric(values, errors='raise')
    non_null = values.dropna()
    if not (non_null % 1 == 0).all():
        raise ValueError("non-integer values found")
    if len(non_null) == len(values):
        values = values.astype('int64')
    return values


def _coerce_strings(values):
    """Coerce to strings, leaving nulls as they are."""
    return values.where(values.isna(), values.astype(str))


def coerce_table(frame, tablename):
    '''Validate the columns of a raw table against the schema, and
    coerce each column to the type declared in the schema.

    Args:
        frame (pd.DataFrame): The raw table.
        tablename (str): Name of the table in the schema.
    Returns:
        A new :code:`pd.DataFrame` with columns in schema order.
    Raises:
        LoadError if the columns don't match, a value can't be coerced,
        or a key is duplicated.
    '''
    _class = get_class_by_tablename(Base, tablename)
    expected = orm_column_names(_class)
    found = list(frame.columns)
    if len(found) != len(expected) or set(found) != set(expected):
        raise LoadError(tablename, f"expected columns {expected}, "
                                   f"found {found}")
    frame = frame[expected].copy()
    coercers = [(orm_columns_of_type(_class, int), _coerce_integers),
                (orm_columns_of_type(_class, float),
                 lambda values: pd.to_numeric(values,
                                              errors='raise').astype(float)),
                (orm_columns_of_type(_class, str), _coerce_strings),
                (orm_date_columns(_class), to_datetime_column)]
    for columns, coercer in coercers:
        for col in columns:
            try:
                frame[col] = coercer(frame[col])
            except (ValueError, TypeError) as err:
                raise LoadError(tablename, f"bad value in '{col}': {err}") from err
    for key in [orm_primary_key(_class)] + ALTERNATE_KEYS.get(tablename, []):
        duplicated = frame.duplicated(key)
        if duplicated.any():
            examples = frame.loc[duplicated, key].head(3).values.tolist()
            raise LoadError(tablename, f"{duplicated.sum()} rows with a "
                                       f"duplicated key {key}, e.g. {examples}")
    return frame


def read_table_csv(data_dir, tablename):
    '''Read and validate one table from :code:`<data_dir>/<tablename>.csv`.

    Args:
        data_dir (str): Directory containing the table files.
        tablename (str): Name of the table in the schema.
    Returns:
        :code:`pd.DataFrame`
    '''
    path = os.path.join(data_dir, f'{tablename}.csv')
    if not os.path.isfile(path):
        raise LoadError(tablename, f"{path} not found")
    _class = get_class_by_tablename(Base, tablename)
    # Read identifiers as strings, to preserve e.g. leading zeros
    dtype = {col: str for col in orm_columns_of_type(_class, str)}
    try:
        frame = pd.read_csv(path, dtype=dtype)
    except (pd.errors.ParserError, pd.errors.EmptyDataError,
            UnicodeDecodeError) as err:
        raise LoadError(tablename, f"malformed file {path}: {err}") from err
    return coerce_table(frame, tablename)


def configured_data_dir(config_path=None):
    '''Retrieve the data directory from the :code:`[tables]` section
    of the config. Relative paths are resolved against the directory
    containing the config file.'''
    try:
        data_dir = get_config('tables', config_path=config_path)['data_dir']
        config_dir = os.path.dirname(find_config_path(config_path))
    except (KeyError, FileNotFoundError) as err:
        raise LoadError('config', f"no data directory configured: {err}") from err
    if not os.path.isabs(data_dir):
        data_dir = os.path.normpath(os.path.join(config_dir, data_dir))
    return data_dir


def load(data_dir=None, config_path=None):
    '''Load every table from CSV files into a :obj:`TableStore`.

    Args:
        data_dir (str): Directory containing :code:`<tablename>.csv` for
                        every table. Defaults to the configured directory.
        config_path (str): Optional explicit path to a config file.
    Returns:
        :obj:`TableStore`
    Raises:
        LoadError if any table is missing or malformed.
    '''
    if data_dir is None:
        data_dir = configured_data_dir(config_path)
    logging.info(f"Loading tables from {data_dir}")
    tables = {}
    for tablename in TABLE_NAMES:
        tables[tablename] = read_table_csv(data_dir, tablename)
        logging.info(f"{len(tables[tablename])} rows loaded from {tablename}")
    return TableStore(tables)


def load_from_sql(engine):
    '''Load every table from a database into a :obj:`TableStore`.

    Args:
        engine (:obj:`sqlalchemy.engine.base.Engine`): engine to use to
                                                      access the database
    Returns:
        :obj:`TableStore`
    Raises:
        LoadError if any table is missing or malformed.
    '''
    tables = {}
    for tablename in TABLE_NAMES:
        try:
            if not inspect(engine).has_table(tablename):
                raise LoadError(tablename, "table not found in database")
            frame = pd.read_sql_table(tablename, engine)
        except SQLAlchemyError as err:
            raise LoadError(tablename, str(err)) from err
        tables[tablename] = coerce_table(frame, tablename)
        logging.info(f"{len(tables[tablename])} rows loaded from {tablename}")
    return TableStore(tables)
