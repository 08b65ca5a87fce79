from fastapi import APIRouter, HTTPException

from markov_cea.data.registry import TableRegistry
from markov_cea.exceptions import KeyNotFound
from markov_cea.services.table_service import get_table_status

router = APIRouter(tags=["tables"])


@router.get("/tables")
def get_tables():
    """Return the lookup tables loaded into the registry."""
    return get_table_status()


@router.get("/tables/{name}/{key}")
def get_table_row(name: str, key: int):
    """Return every column of one row of a lookup table."""
    table = TableRegistry.get().tables.get(name)
    if table is None:
        raise HTTPException(status_code=404, detail=f"Table '{name}' not found")
    try:
        return {column: table.lookup(key, column) for column in table.columns}
    except KeyNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
