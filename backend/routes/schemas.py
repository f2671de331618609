from pydantic import BaseModel, ConfigDict

class WireModel(BaseModel):
    """Request body using the game client's camelCase field names."""
    model_config = ConfigDict(populate_by_name=True, coerce_numbers_to_str=True)
