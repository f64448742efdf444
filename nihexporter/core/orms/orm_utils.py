from datetime import date
from sqlalchemy import create_engine

from nihexporter.core.misctools import get_config


def orm_column_names(_class):
    """Return the column names for the provided ORM, in table order"""
    return [column.name for column in _class.__table__.columns]


def orm_columns_of_type(_class, python_type):
    """Return the names of the columns in the ORM whose python type
    is :code:`python_type` (e.g. :code:`int`, :code:`float`, :code:`str`).
    """
    return [col.name for col in _class.__table__.columns
            if col.type.python_type is python_type]


def orm_date_columns(_class):
    """Return the names of the columns in the ORM which are dates."""
    return orm_columns_of_type(_class, date)


def orm_primary_key(_class):
    """Return the names of the primary key columns of the ORM"""
    return [col.name for col in _class.__table__.primary_key.columns]


def get_class_by_tablename(Base, tablename):
    """Return class reference mapped to table.

    Args:
        Base: The declarative base which the ORM was created from.
        tablename (str): Name of table.

    Returns:
        reference to the ORM class.
    """
    for mapper in Base.registry.mappers:
        _class = mapper.class_
        if getattr(_class, '__tablename__', None) == tablename:
            return _class
    raise NameError(tablename)


def get_engine(config_path=None, section='database'):
    '''Generates the database engine described by the config.

    Args:
        config_path (str): Path to the config file (otherwise
                           the default config is used).
        section (str): Section of the config to use.
    Returns:
        (:obj:`sqlalchemy.engine.base.Engine`)
    '''
    conf = get_config(section, config_path=config_path)
    return create_engine(conf['url'])
