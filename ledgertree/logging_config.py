"""Logging configuration for ledgertree.

The library only ever asks for loggers; applications that want
structured output call setup_logging() once at start-up.

Copyright: (c) 2018 by Vasyl Paliy.
License: MIT, see LICENSE for more details.
"""

import logging
import sys

import structlog


def setup_logging(level='INFO', json_format=True, stream=None):
  """Configure structlog on top of the standard logging module.

  :param level: log level name (DEBUG, INFO, WARNING, ...).
  :param json_format: render JSON lines if True, colored console output otherwise.
  :param stream: output stream, stderr by default.
  """
  numeric_level = getattr(logging, level.upper(), logging.INFO)

  root_logger = logging.getLogger()
  root_logger.setLevel(numeric_level)
  root_logger.handlers.clear()

  handler = logging.StreamHandler(stream or sys.stderr)
  handler.setLevel(numeric_level)
  handler.setFormatter(logging.Formatter('%(message)s'))
  root_logger.addHandler(handler)

  processors = [
    structlog.stdlib.filter_by_level,
    structlog.stdlib.add_log_level,
    structlog.stdlib.add_logger_name,
    structlog.processors.TimeStamper(fmt='iso'),
    structlog.processors.StackInfoRenderer(),
    structlog.processors.format_exc_info,
  ]
  if json_format:
    processors.append(structlog.processors.JSONRenderer())
  else:
    processors.append(structlog.dev.ConsoleRenderer(colors=True))

  structlog.configure(
    processors=processors,
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
  )


def get_logger(name):
  """Returns a structured logger namespaced under ledgertree."""
  if not name.startswith('ledgertree'):
    name = f'ledgertree.{name}'
  return structlog.get_logger(name)
