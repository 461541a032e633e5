import pytest
from fiesta.utils.prompt_manager import PromptManager, PromptTemplate
from pathlib import Path
import tempfile


class TestPromptManager:
    """Тесты для системы управления промптами"""

    def test_list_templates(self):
        """Тест: получение списка доступных шаблонов"""
        from fiesta.utils.prompt_manager import prompt_manager

        templates = prompt_manager.list_templates()
        assert isinstance(templates, list)
        for name in ("system_prompt", "session_summary", "welcome", "welcome_new_session",
                     "mode_auto", "mode_compute", "mode_agent", "recall_block"):
            assert name in templates

    def test_render_welcome(self):
        """Тест: приветствие для legacy сессии дня"""
        from fiesta.utils.prompt_manager import prompt_manager

        assert "Velkommen til FiestaAI" in prompt_manager.render("welcome")
        assert "Ny samtale startet" in prompt_manager.render("welcome_new_session")

    def test_render_system_prompt(self):
        """Тест: рендеринг системного промпта со всеми блоками"""
        from fiesta.utils.prompt_manager import prompt_manager

        rendered = prompt_manager.render(
            "system_prompt",
            task_type="kundeservice",
            mode_name="AGENT",
            mode_instructions="Maks. 15 ræsonnementstrin",
            advanced="DEAKTIVERET",
            recall_block="KONTEKST X",
            calendar_block="KALENDER Y",
        )

        assert "FiestaAI" in rendered
        assert "kundeservice" in rendered
        assert "AKTUEL MODE: AGENT" in rendered
        assert "KONTEKST X" in rendered
        assert "KALENDER Y" in rendered

    def test_render_mode_with_max_steps(self):
        """Тест: бюджет шагов попадает в инструкции режима"""
        from fiesta.utils.prompt_manager import prompt_manager

        assert "Maks. 10 ræsonnementstrin" in prompt_manager.render("mode_compute", max_steps=10)

    def test_render_session_summary(self):
        """Тест: промпт саммари содержит диалог"""
        from fiesta.utils.prompt_manager import prompt_manager

        rendered = prompt_manager.render("session_summary", conversation="user: Hej")
        assert "user: Hej" in rendered
        assert "100 ord" in rendered

    def test_custom_prompt_manager(self):
        """Тест: создание кастомного менеджера промптов"""
        with tempfile.TemporaryDirectory() as temp_dir:
            template_path = Path(temp_dir) / "test_template.md"
            template_path.write_text("Hej {name}!\n", encoding='utf-8')

            manager = PromptManager(template_dir=temp_dir)

            assert manager.list_templates() == ["test_template"]
            assert manager.render("test_template", name="Jonas") == "Hej Jonas!"

    def test_template_not_found(self):
        """Тест: ошибка при отсутствии шаблона"""
        from fiesta.utils.prompt_manager import prompt_manager

        with pytest.raises(FileNotFoundError):
            prompt_manager.render("nonexistent_template")

    def test_prompt_template_class(self):
        """Тест: шаблон загружается один раз и кэшируется"""
        with tempfile.TemporaryDirectory() as temp_dir:
            template_path = Path(temp_dir) / "test.md"
            template_path.write_text("Test {value}", encoding='utf-8')

            template = PromptTemplate(template_path)
            assert template.format(value="123") == "Test 123"

            template_path.write_text("Changed {value}", encoding='utf-8')
            assert template.format(value="456") == "Test 456"
