# run.py
# Demo entry point: builds one function through the registry and evaluates it.
#
# Needs OPENAI_API_KEY (or OPENROUTER_API_KEY with LLM_FUNCTIONS_BASE_URL set
# to https://openrouter.ai/api/v1) in the environment or a .env file.

import asyncio

from pydantic import BaseModel, Field

from llm_functions import display
from llm_functions.errors import LLMFunctionError
from llm_functions.models import SubFunction
from llm_functions.registry import InMemoryLogStore, init_llm_function


class Items(BaseModel):
    items: list[str] = Field(..., description="Generated items.")


class WordCount(BaseModel):
    text: str


def count_words(args: WordCount) -> str:
    return str(len(args.text.split()))


PROMPTS = [
    {"instructions": {"letter": "A"}},
    {"instructions": {"letter": "Q"}},
]


async def main() -> None:
    display.configure_logging()
    registry = await init_llm_function(InMemoryLogStore())

    generate = (
        registry.llm_function.name("Generate items")
        .description("Lists fruits starting with a letter")
        .instructions("Generate fruits starting with {letter}")
        .output(Items)
        .functions(
            [
                SubFunction(
                    name="count_words",
                    description="Counts the words in a text",
                    parameters=WordCount,
                    implementation=count_words,
                )
            ]
        )
        .dataset(PROMPTS)
        .verify(lambda execution, _args: bool(getattr(execution.final_response, "items", None)))
        .create()
    )
    display.banner(generate.definition)
    observer = display.ConsoleObserver()

    for prompt in PROMPTS:
        try:
            execution = await registry.evaluate_fn(generate.id, prompt, callback=observer)
        except LLMFunctionError as exc:
            display.halt(str(exc))
            return
        observer.forget(execution.id)
        display.execution_summary(execution)
        display.final_result(execution.final_response)


if __name__ == "__main__":
    asyncio.run(main())
