# orderease/services/llm_engine.py
import logging
from typing import Any, List, Optional

from langchain_core.output_parsers import JsonOutputParser
from langchain_core.prompts import ChatPromptTemplate
from langchain_groq import ChatGroq
from pydantic import ValidationError

from orderease.core.config import settings
from orderease.core.errors import ParsingUnavailable
from orderease.models.schemas import MenuItemData, ParsedItem

logger = logging.getLogger(__name__)

order_system_prompt = """
You are the order-taking assistant of OrderEase, a restaurant that takes orders on WhatsApp.
Read the customer's message and extract the dishes they want and how many of each.

### AVAILABLE DISHES
{menu}

### RECENT CONVERSATION
{context}

### RULES
1. Only extract dishes that exist in the list above. Use the exact dish name from the list.
2. Match variations and plurals ("pizzas" is "Pizza", "coke" is "Coke").
3. Extract the quantity for each dish. If no quantity is given, use 1.
4. Ignore words that are not about food (greetings, questions, small talk).

### OUTPUT FORMAT (JSON ONLY)
Return a JSON array and nothing else. Do not add markdown like ```json.
[
    {{"name": "Pizza", "quantity": 2}},
    {{"name": "Coke", "quantity": 1}}
]
If no dish from the list is mentioned, return: []
"""

order_prompt = ChatPromptTemplate.from_messages([
    ("system", order_system_prompt),
    ("human", "{user_input}"),
])

order_parser = JsonOutputParser()


def build_order_chain(api_key: str, model_name: str, timeout: float):
    llm = ChatGroq(
        temperature=0,
        groq_api_key=api_key,
        model_name=model_name,
        timeout=timeout,
        max_retries=1,
    )
    return order_prompt | llm | order_parser


class IntelligentOrderParser:
    """
    LLM-backed order extraction.

    `parse` returns None whenever the model cannot answer (no API key,
    network failure, timeout, unreadable output); callers fall back to the
    deterministic parser. It never raises.
    """

    def __init__(self, api_key: str = None, model_name: str = None, timeout: float = None, chain=None):
        self.api_key = api_key if api_key is not None else settings.GROQ_API_KEY
        self.model_name = model_name or settings.GROQ_MODEL
        self.timeout = timeout or settings.EXTERNAL_TIMEOUT_SECONDS
        self._chain = chain

    def _get_chain(self):
        if self._chain is None:
            if not self.api_key:
                raise ParsingUnavailable("GROQ_API_KEY is not configured")
            self._chain = build_order_chain(self.api_key, self.model_name, self.timeout)
        return self._chain

    def parse(self, text: str, menu: List[MenuItemData], context: str = None) -> Optional[List[ParsedItem]]:
        menu_text = "\n".join(f"- {item.name}: {item.price}" for item in menu)
        try:
            chain = self._get_chain()
            response = chain.invoke({
                "menu": menu_text,
                "context": context or "(none)",
                "user_input": text,
            })
        except ParsingUnavailable as e:
            logger.info("Intelligent parser not configured: %s", e)
            return None
        except Exception as e:
            logger.warning("Intelligent parser failed, falling back: %s", e)
            return None
        return self._coerce(response)

    @staticmethod
    def _coerce(response: Any) -> Optional[List[ParsedItem]]:
        if isinstance(response, dict):
            response = response.get("items", response.get("order"))
        if not isinstance(response, list):
            logger.warning("Intelligent parser returned %s, expected a list", type(response).__name__)
            return None

        items = []
        for raw in response:
            if not isinstance(raw, dict):
                continue
            try:
                items.append(ParsedItem(name=str(raw.get("name", "")), quantity=raw.get("quantity", 1)))
            except ValidationError:
                logger.debug("Dropping unreadable parser item %r", raw)
        return items
