from markov_cea.data.loaders import initial_population_from_frame, load_initial_populations, load_lookup_table
from markov_cea.data.registry import TableRegistry

__all__ = [
    "TableRegistry",
    "initial_population_from_frame",
    "load_initial_populations",
    "load_lookup_table",
]
