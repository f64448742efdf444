'''
A collection of miscellaneous tools, chiefly for finding and
reading the package configuration.
'''
import configparser
import os

CONFIG_ENV = 'NIHEXPORTERCONF'
DEFAULT_CONFIG = os.path.join(os.path.dirname(os.path.abspath(__file__)),
                              'config', 'nihexporter.config')


def find_config_path(config_path=None):
    '''Resolve the path of the config file. In order of precedence:
    the path passed in, the path in the :code:`NIHEXPORTERCONF`
    environmental variable, or the config bundled with the package.

    Args:
        config_path (str): Optional explicit path to a config file.
    Returns:
        The absolute path to the config file.
    '''
    if config_path is None:
        config_path = os.environ.get(CONFIG_ENV, DEFAULT_CONFIG)
    if not os.path.exists(config_path):
        raise FileNotFoundError(f"Could not find {config_path}")
    return os.path.abspath(config_path)


def get_config(header, config_path=None):
    '''Get the configuration from the config file, and convert
    the key-value pairs under the config :code:`header` into a `dict`.

    Parameters:
        header (str): The header key in the config file.
        config_path (str): Optional explicit path to a config file.

    Returns:
        :obj:`dict`
    '''
    config = configparser.ConfigParser()
    config.read(find_config_path(config_path))
    return dict(config[header])


def split_config_list(value, cast=float):
    """Split a comma-separated config value into a list, casting each item"""
    return [cast(item) for item in value.split(',') if item.strip()]
