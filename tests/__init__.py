"""
Test Package Initialization

Test Structure:
- test_config.py: Configuration tests
- test_phonetic.py: Phonetic replacement and index mapping tests
- test_parser.py: Incremental turn parser tests
- test_backend.py: Stop sequences and HTTP streaming backend tests
- test_conversation.py: Conversation orchestration tests
- test_voice.py: Voice truncation tests
- test_code_runner.py: Code execution tests
- test_cli.py: Command line tests

Run tests with:
    pytest tests/ -v
"""
