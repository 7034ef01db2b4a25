"""
Fixed stop-word set used by the keyword statistics engine.
Covers English, Ukrainian and Russian function words; words of two letters or
fewer are dropped by the tokenizer anyway and are not listed.
"""

ENGLISH_STOP_WORDS = frozenset("""
about above after again against all also and any are aren't because been before being below
between both but can cannot could couldn't did didn't does doesn't doing don't down during each
few for from further had hadn't has hasn't have haven't having her here here's hers herself him
himself his how how's i'd i'll i'm i've into isn't it's its itself just let's more most mustn't
myself nor not now off once only other ought our ours ourselves out over own same shan't she
she'd she'll she's should shouldn't some such than that that's the their theirs them themselves
then there there's these they they'd they'll they're they've this those through too under until
very was wasn't we'd we'll we're we've were weren't what what's when when's where where's which
while who who's whom why why's will with won't would wouldn't you you'd you'll you're you've your
yours yourself yourselves may might must shall also yet via per etc
""".split())

UKRAINIAN_STOP_WORDS = frozenset("""
або але без біля більш більше буде будуть був була були було бути вам вас весь вже від вона
вони воно все всі всіх вся дуже для досить його якої який яка яке які якщо коли крім лише між
мене мені мов може можна нам нас наш наша наше наші неї нема немає них ній після під при про
саме собі та так також там тепер тим тих тобто тому тут цей цих цього цьому через чим чого щоб
щодо якщо яких яким які інших інші його їх їхній цим ось хоча тоді усі усе уже свої своє свій
""".split())

RUSSIAN_STOP_WORDS = frozenset("""
без более больше будет будто бывает был была были было быть вам вас весь вот впрочем все всегда
всего всех всю где говорил даже два для его ему если есть еще жизнь зачем здесь из-за иногда
как какая какой когда кто куда между меня мне много может можно мой моя над надо наконец нас
него нее ней нельзя нет ним них никогда ничего она они оно опять перед после потом потому
почти при про раз разве свою себе себя сейчас совсем так такой там тебя тем теперь то тогда
того тоже только том тот три тут уже хорошо хоть чего чем через что чтоб чтобы чуть эти этого
этой этом этот эту
""".split())

STOP_WORDS = ENGLISH_STOP_WORDS | UKRAINIAN_STOP_WORDS | RUSSIAN_STOP_WORDS
