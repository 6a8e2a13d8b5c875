"""
Sistema de Códigos de Erro Estruturados
Fornece mensagens padronizadas para usuários e administradores
"""


class ErrorCode:
    """Catálogo de códigos de erro com mensagens para usuário final e administrador"""

    # Imagem (1xxx)
    ERR_1001 = {
        "code": "ERR_1001",
        "admin_msg": "Imagem não encontrada ou vazia no storage",
        "user_msg": "Não foi possível ler a foto armazenada. Capture a foto novamente e reenvie a inspeção."
    }

    ERR_1002 = {
        "code": "ERR_1002",
        "admin_msg": "Imagem rejeitada pelo provedor de IA (formato inválido ou corrompida)",
        "user_msg": "A foto está corrompida ou em um formato não suportado. Use fotos JPG ou PNG."
    }

    ERR_1003 = {
        "code": "ERR_1003",
        "admin_msg": "Imagem muito grande para o provedor de IA",
        "user_msg": "A foto excede o tamanho máximo aceito. Reduza a resolução e tente novamente."
    }

    # OpenAI / IA (2xxx)
    ERR_2001 = {
        "code": "ERR_2001",
        "admin_msg": "OpenAI API timeout",
        "user_msg": "Tempo limite excedido na análise. O sistema está sobrecarregado. Tente novamente em alguns minutos."
    }

    ERR_2002 = {
        "code": "ERR_2002",
        "admin_msg": "OpenAI rate limit / quota exceeded",
        "user_msg": "Limite de uso da IA atingido. Tente novamente mais tarde ou contate o suporte."
    }

    ERR_2003 = {
        "code": "ERR_2003",
        "admin_msg": "Structured output validation failed (IA não retornou formato esperado)",
        "user_msg": "A IA não conseguiu interpretar a foto corretamente. Tente novamente com outra foto."
    }

    ERR_2004 = {
        "code": "ERR_2004",
        "admin_msg": "OpenAI API key inválida, expirada ou ausente",
        "user_msg": "Configuração da IA inválida. Contate o administrador do sistema urgentemente."
    }

    ERR_2005 = {
        "code": "ERR_2005",
        "admin_msg": "Resposta da IA vazia, recusada ou bloqueada por filtro de conteúdo",
        "user_msg": "A IA não retornou uma análise para esta foto. Verifique o conteúdo da imagem."
    }

    ERR_2006 = {
        "code": "ERR_2006",
        "admin_msg": "Provedor de IA indisponível (erro de conexão ou 5xx)",
        "user_msg": "O serviço de análise está indisponível no momento. Tente novamente em alguns minutos."
    }

    # Banco de Dados (3xxx)
    ERR_3001 = {
        "code": "ERR_3001",
        "admin_msg": "Falha ao salvar dados no banco (commit failed)",
        "user_msg": "Erro ao salvar os dados processados. Tente novamente. Se persistir, contate o suporte."
    }

    ERR_3003 = {
        "code": "ERR_3003",
        "admin_msg": "Conexão com banco de dados perdida",
        "user_msg": "Falha na conexão com o servidor. Verifique sua internet e tente novamente."
    }

    # Agendador (4xxx)
    ERR_4001 = {
        "code": "ERR_4001",
        "admin_msg": "Falha ao enfileirar Cloud Task",
        "user_msg": "Não foi possível agendar a análise. Tente novamente em alguns minutos."
    }

    # Sistema / Genérico (9xxx)
    ERR_9001 = {
        "code": "ERR_9001",
        "admin_msg": "Erro não categorizado (exceção genérica)",
        "user_msg": "Ocorreu um erro inesperado. Anote o código deste erro e entre em contato com o suporte."
    }

    @staticmethod
    def get_error(exception_or_code):
        """
        Retorna objeto de erro baseado na exceção ou código.

        Args:
            exception_or_code: Exception object ou string com código (ex: "ERR_1001")

        Returns:
            dict com code, admin_msg, user_msg
        """
        if isinstance(exception_or_code, str):
            # Código direto
            return getattr(ErrorCode, exception_or_code, ErrorCode.ERR_9001)

        # Código já classificado na origem (ex: ExternalServiceError do cliente de IA)
        known_code = getattr(exception_or_code, "error_code", None)
        if known_code and hasattr(ErrorCode, known_code):
            return getattr(ErrorCode, known_code)

        # Análise da exceção
        error_str = str(exception_or_code).lower()

        # Imagem
        if "image" in error_str and ("not found" in error_str or "empty" in error_str):
            return ErrorCode.ERR_1001
        if "too large" in error_str or "file size" in error_str:
            return ErrorCode.ERR_1003
        if "invalid image" in error_str or "unsupported image" in error_str:
            return ErrorCode.ERR_1002

        # OpenAI
        if "timeout" in error_str or "timed out" in error_str:
            return ErrorCode.ERR_2001
        if "quota" in error_str or "rate limit" in error_str:
            return ErrorCode.ERR_2002
        if "api key" in error_str or "authentication" in error_str:
            return ErrorCode.ERR_2004
        if "validation" in error_str or "parsing" in error_str:
            return ErrorCode.ERR_2003
        if "refus" in error_str or "content filter" in error_str:
            return ErrorCode.ERR_2005

        # Database
        if "database" in error_str or "commit" in error_str:
            return ErrorCode.ERR_3001
        if "connection" in error_str:
            return ErrorCode.ERR_3003

        # Default
        return ErrorCode.ERR_9001
