from typing import List
from typing_extensions import Protocol

from ...domain.models import ProviderInput


class ImageProvider(Protocol):
    model: str

    async def run(self, provider_input: ProviderInput) -> List[str]: ...
