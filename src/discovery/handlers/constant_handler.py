from discovery.handlers.base import Handler


class ConstantHandler(Handler):
    type = "constant"
    required = ("value",)

    def resolve(self, provider, address, resolved):
        return self.definition["value"]
